"""Description of the DICOMweb server metadata is retrieved from."""
import base64
import dataclasses
import json
import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional, Union


logger = logging.getLogger(__name__)

# Keys of viewer configuration files mapped to attribute names
_CAMEL_CASE_KEYS = {
    'wadoRoot': 'wado_root',
    'qidoRoot': 'qido_root',
    'wadoUriRoot': 'wado_uri_root',
    'imageRendering': 'image_rendering',
    'thumbnailRendering': 'thumbnail_rendering',
    'enableStudyLazyLoad': 'enable_study_lazy_load',
    'accessToken': 'access_token',
}


@dataclasses.dataclass(frozen=True)
class ServerDescriptor:
    """DICOMweb server configuration.

    Attributes:
        wado_root: str
            Base URL of the WADO-RS service
        qido_root: str
            Base URL of the QIDO-RS service
        wado_uri_root: str
            Base URL of the WADO-URI service
        name: Union[str, None]
            Display name of the server
        image_rendering: str
            How images of the server should be rendered (e.g. ``"wadors"``)
        thumbnail_rendering: str
            How thumbnails of the server should be rendered
        enable_study_lazy_load: bool
            Whether series of a study should be loaded one at a time
        auth: Union[str, Callable[[], str], None]
            ``"user:password"`` credentials for HTTP Basic authentication or
            a function returning the value of the Authorization header
        access_token: Union[str, None]
            OAuth 2.0 access token for HTTP Bearer authentication
    """
    wado_root: str
    qido_root: str = ''
    wado_uri_root: str = ''
    name: Optional[str] = None
    image_rendering: str = 'wadors'
    thumbnail_rendering: str = 'wadors'
    enable_study_lazy_load: bool = False
    auth: Union[str, Callable[[], str], None] = dataclasses.field(
        default=None, repr=False
    )
    access_token: Optional[str] = dataclasses.field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.wado_root:
            raise ValueError('Server requires a WADO root URL.')
        # frozen dataclass, attributes are set via object.__setattr__
        wado_root = self.wado_root.rstrip('/')
        object.__setattr__(self, 'wado_root', wado_root)
        object.__setattr__(
            self, 'qido_root', (self.qido_root or wado_root).rstrip('/')
        )
        object.__setattr__(
            self, 'wado_uri_root', (self.wado_uri_root or wado_root).rstrip('/')
        )

    @classmethod
    def from_dict(cls, mapping: Mapping[str, Any]) -> 'ServerDescriptor':
        """Create a server descriptor from a configuration mapping.

        Parameters
        ----------
        mapping: Mapping[str, Any]
            configuration with either snake case keys (e.g. ``"wado_root"``)
            or the camel case keys of viewer configuration files
            (e.g. ``"wadoRoot"``, ``"requestOptions": {"auth": ...}``)

        Returns
        -------
        dicomweb_metadata.server.ServerDescriptor
            server descriptor

        Raises
        ------
        ValueError
            when the WADO root URL is missing

        """
        field_names = {f.name for f in dataclasses.fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in mapping.items():
            name = _CAMEL_CASE_KEYS.get(key, key)
            if name in field_names:
                kwargs[name] = value
            elif key == 'requestOptions' and isinstance(value, Mapping):
                if value.get('auth') is not None:
                    kwargs['auth'] = value['auth']
            else:
                logger.debug(f'ignore unknown server option "{key}"')
        if not kwargs.get('wado_root'):
            raise ValueError('Server configuration requires "wado_root".')
        return cls(**kwargs)

    @classmethod
    def from_file(cls, filename: str) -> 'ServerDescriptor':
        """Create a server descriptor from a JSON configuration file.

        Parameters
        ----------
        filename: str
            path to the file

        Returns
        -------
        dicomweb_metadata.server.ServerDescriptor
            server descriptor

        """
        filename = os.path.expanduser(os.path.expandvars(filename))
        logger.debug(f'read server configuration from file: {filename}')
        with open(filename, 'r') as f:
            return cls.from_dict(json.load(f))


def get_authorization_header(server: ServerDescriptor) -> Dict[str, str]:
    """Build the Authorization header for requests to a server.

    Parameters
    ----------
    server: dicomweb_metadata.server.ServerDescriptor
        server

    Returns
    -------
    Dict[str, str]
        header fields (empty in case no credentials are configured)

    """
    if callable(server.auth):
        return {'Authorization': server.auth()}
    if server.auth:
        credentials = base64.b64encode(server.auth.encode('utf-8'))
        return {'Authorization': f'Basic {credentials.decode("ascii")}'}
    if server.access_token:
        return {'Authorization': f'Bearer {server.access_token}'}
    return {}
