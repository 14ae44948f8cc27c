import logging
import os
from typing import Optional

import requests

from dicomweb_metadata.server import ServerDescriptor, get_authorization_header


logger = logging.getLogger(__name__)


def create_session() -> requests.Session:
    """Creates an unauthorized session.

    Returns
    -------
    requests.Session
        unauthorized session

    """
    logger.debug('initialize HTTP session')
    return requests.Session()


def create_session_from_server(server: ServerDescriptor) -> requests.Session:
    """Creates a session that authorizes requests to a given server.

    Parameters
    ----------
    server: dicomweb_metadata.server.ServerDescriptor
        server

    Returns
    -------
    requests.Session
        session carrying the Authorization header of the server, if any

    """
    session = create_session()
    headers = get_authorization_header(server)
    if headers:
        logger.debug(f'authorize HTTP session for server "{server.wado_root}"')
        session.headers.update(headers)
    return session


def add_certs_to_session(
    session: requests.Session,
    ca_bundle: Optional[str] = None,
    cert: Optional[str] = None
) -> requests.Session:
    """Adds CA bundle and certificate to an existing session.

    Parameters
    ----------
    session: requests.Session
        input session
    ca_bundle: str, optional
        path to CA bundle file
    cert: str, optional
        path to client certificate file in Privacy Enhanced Mail (PEM) format

    Returns
    -------
    requests.Session
        verified session

    """
    if ca_bundle is not None:
        ca_bundle = os.path.expanduser(os.path.expandvars(ca_bundle))
        if not os.path.exists(ca_bundle):
            raise OSError(
                'CA bundle file does not exist: {}'.format(ca_bundle)
            )
        logger.debug('use CA bundle file: {}'.format(ca_bundle))
        session.verify = ca_bundle
    if cert is not None:
        cert = os.path.expanduser(os.path.expandvars(cert))
        if not os.path.exists(cert):
            raise OSError(
                'Certificate file does not exist: {}'.format(cert)
            )
        logger.debug('use certificate file: {}'.format(cert))
        session.cert = cert
    return session
