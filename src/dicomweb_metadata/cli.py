'''Command Line Interface (CLI)'''
import sys
import json
import logging
import argparse
import dataclasses
import traceback
import getpass

from dicomweb_metadata.log import configure_logging
from dicomweb_metadata.retrieve import create_transport, retrieve_metadata
from dicomweb_metadata.server import ServerDescriptor
from dicomweb_metadata.session_utils import (
    add_certs_to_session,
    create_session_from_server,
)


logger = logging.getLogger(__name__)


def _get_parser():
    '''Builds the object for parsing command line arguments.

    Returns
    -------
    argparse.ArgumentParser

    '''
    parser = argparse.ArgumentParser(
        description='Retrieves study metadata from DICOMweb RESTful services.',
        prog='dicomweb_metadata'
    )
    parser.add_argument(
        '-v', '--verbosity', dest='logging_verbosity', default=0,
        action='count',
        help=(
            'logging verbosity that maps to a logging level '
            '(default: error, -v: warning, -vv: info, -vvv: debug, '
            '-vvvv: debug + thread names + traceback); '
            'all log messages are written to standard error'
        )
    )
    parser.add_argument(
        '-u', '--user', dest='username', metavar='NAME',
        help='username for authentication with the DICOMweb service'
    )
    parser.add_argument(
        '-p', '--password', dest='password', metavar='PASSWORD',
        help='password for authentication with the DICOMweb service'
    )
    parser.add_argument(
        '--ca', dest='ca_bundle', metavar='CERT-FILE',
        help='path to a CA bundle file'
    )
    parser.add_argument(
        '--cert', dest='cert', metavar='CERT-FILE',
        help='path to a client certificate file in PEM format'
    )
    parser.add_argument(
        '--token', dest='access_token', metavar='TOKEN',
        help='access token for authorization with the DICOMweb service'
    )
    server_group = parser.add_mutually_exclusive_group(required=True)
    server_group.add_argument(
        '--url', dest='url', metavar='URL',
        help='uniform resource locator of the WADO-RS service'
    )
    server_group.add_argument(
        '--config', dest='config_file', metavar='FILE',
        help='path to a JSON file describing the DICOMweb server'
    )

    subparsers = parser.add_subparsers(dest='method', help='services')
    subparsers.required = True

    retrieve_parser = subparsers.add_parser(
        'retrieve',
        description='Retrieve the metadata of a study.'
    )
    retrieve_parser.add_argument(
        '--study', metavar='UID', dest='study_instance_uid', required=True,
        help='unique study identifier (StudyInstanceUID)'
    )
    retrieve_parser.add_argument(
        '--series', metavar='UID', dest='series_instance_uid',
        help=(
            'unique series identifier (SeriesInstanceUID) of the series '
            'that should be retrieved (first)'
        )
    )
    retrieve_parser.add_argument(
        '--lazy', dest='lazy', action='store_const', const=True,
        help=(
            'retrieve series one at a time '
            '(default: as configured for the server)'
        )
    )
    retrieve_parser.add_argument(
        '--all', dest='load_all', action='store_true',
        help='load all remaining series of a lazily retrieved study'
    )
    retrieve_parser.add_argument(
        '--prettify', action='store_true',
        help='pretty print JSON output'
    )
    retrieve_parser.set_defaults(func=_retrieve_metadata)

    return parser


def _get_server(args):
    '''Creates the description of the server from the command line
    arguments.
    '''
    if args.config_file:
        server = ServerDescriptor.from_file(args.config_file)
    else:
        server = ServerDescriptor(wado_root=args.url)
    if args.username:
        server = dataclasses.replace(
            server, auth=f'{args.username}:{args.password}'
        )
    if args.access_token:
        server = dataclasses.replace(server, access_token=args.access_token)
    return server


def _get_transport(server, args):
    '''Creates the transport for requests to the server, verified with the
    certificates given on the command line.
    '''
    session = create_session_from_server(server)
    session = add_certs_to_session(session, args.ca_bundle, args.cert)
    return create_transport(server, session)


def _print_metadata(data, prettify=False):
    logger.info('print metadata')
    if prettify:
        print(json.dumps(data, indent=4, sort_keys=True))
    else:
        print(json.dumps(data, sort_keys=True))


def _retrieve_metadata(args):
    '''Retrieves the metadata of a Study and writes it to standard output.'''
    server = _get_server(args)
    filters = {}
    if args.series_instance_uid:
        filters['series_instance_uid'] = args.series_instance_uid
    study = retrieve_metadata(
        server,
        args.study_instance_uid,
        filters,
        transport=_get_transport(server, args),
        lazy=args.lazy
    )
    if args.load_all and study.series_loader is not None:
        while study.series_loader.has_next():
            study.series_loader.next()
    _print_metadata(study.to_dict(), args.prettify)


def main():
    '''Main entry point for the ``dicomweb_metadata`` command line program.'''
    parser = _get_parser()
    args = parser.parse_args()

    if args.username:
        if not args.password:
            message = 'Enter password for user "{0}": '.format(args.username)
            args.password = getpass.getpass(message)

    configure_logging(args.logging_verbosity)
    try:
        args.func(args)
        sys.exit(0)
    except Exception as err:
        logger.error(str(err))
        if args.logging_verbosity > 3:
            tb = traceback.format_exc()
            logger.error(tb)
        sys.exit(1)


if __name__ == '__main__':

    main()
