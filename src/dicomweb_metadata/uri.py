"""Utilities for building the retrieval URIs of instances."""
import re
from typing import Any, Dict, Optional
from urllib.parse import quote_plus


_REGEX_UID = re.compile(r'^[.0-9]+$')


def build_query_string(params: Optional[Dict[str, Any]] = None) -> str:
    """Build query string for a request message.

    Parameters
    ----------
    params: Union[Dict[str, Any], None], optional
        Query parameters as mapping of key-value pairs;
        in case a key should be included more than once with different
        values, values need to be provided in form of an iterable (e.g.,
        ``{"key": ["value1", "value2"]}`` will result in
        ``"?key=value1&key=value2"``)

    Returns
    -------
    str
        Query string

    """
    if params is None:
        return ''
    components = []
    for key, value in params.items():
        if isinstance(value, (list, tuple, set)):
            for v in value:
                c = '='.join([key, quote_plus(str(v))])
                components.append(c)
        else:
            c = '='.join([key, quote_plus(str(value))])
            components.append(c)
    if len(components) > 0:
        return '?{}'.format('&'.join(components))
    return ''


def assert_uid_format(uid: str) -> None:
    """Check whether a DICOM UID has the correct format.

    Parameters
    ----------
    uid: str
        DICOM UID

    Raises
    ------
    TypeError
        When `uid` is not a string
    ValueError
        When `uid` doesn't match the regular expression pattern
        ``"^[.0-9]+$"``

    """
    if not isinstance(uid, str):
        raise TypeError('DICOM UID must be a string.')
    if not _REGEX_UID.search(uid):
        raise ValueError(f'DICOM UID "{uid}" has invalid format.')


def build_instance_wado_uri(
    wado_uri_root: str,
    study_instance_uid: str,
    series_instance_uid: str,
    sop_instance_uid: str
) -> str:
    """Build the WADO-URI of an instance.

    Parameters
    ----------
    wado_uri_root: str
        Base URL of the WADO-URI service
    study_instance_uid: str
        Study Instance UID
    series_instance_uid: str
        Series Instance UID
    sop_instance_uid: str
        SOP Instance UID

    Returns
    -------
    str
        URI requesting the instance in any transfer syntax

    """
    params = {
        'requestType': 'WADO',
        'studyUID': study_instance_uid,
        'seriesUID': series_instance_uid,
        'objectUID': sop_instance_uid,
        'contentType': 'application/dicom',
        'transferSyntax': '*',
    }
    return f'{wado_uri_root}{build_query_string(params)}'


def build_instance_wado_rs_uri(
    wado_root: str,
    study_instance_uid: str,
    series_instance_uid: str,
    sop_instance_uid: str
) -> str:
    """Build the WADO-RS URI of an instance."""
    return (
        f'{wado_root}/studies/{study_instance_uid}'
        f'/series/{series_instance_uid}'
        f'/instances/{sop_instance_uid}'
    )


def build_instance_frame_wado_rs_uri(
    wado_root: str,
    study_instance_uid: str,
    series_instance_uid: str,
    sop_instance_uid: str,
    frame_number: int = 1
) -> str:
    """Build the WADO-RS URI of a frame of an instance.

    Parameters
    ----------
    wado_root: str
        Base URL of the WADO-RS service
    study_instance_uid: str
        Study Instance UID
    series_instance_uid: str
        Series Instance UID
    sop_instance_uid: str
        SOP Instance UID
    frame_number: int, optional
        One-based index of the frame

    Returns
    -------
    str
        URI

    """
    if frame_number < 1:
        raise ValueError('Frame number must be positive.')
    base_uri = build_instance_wado_rs_uri(
        wado_root,
        study_instance_uid,
        series_instance_uid,
        sop_instance_uid
    )
    return f'{base_uri}/frames/{frame_number}'


def rewrite_bulkdata_uri(uri: str, wado_root: str) -> str:
    """Align the scheme of a bulk data URI with the WADO root.

    Servers behind a TLS-terminating proxy may return ``http`` bulk data
    URIs although they are only reachable via ``https``.

    Parameters
    ----------
    uri: str
        Bulk data URI as returned by the server
    wado_root: str
        Base URL of the WADO-RS service

    Returns
    -------
    str
        URI

    """
    if wado_root.startswith('https') and uri.startswith('http://'):
        return 'https://' + uri[len('http://'):]
    return uri
