__version__ = '0.1.0'

from dicomweb_metadata.cache import PaletteColorCache, default_palette_cache
from dicomweb_metadata.error import (
    EmptyStudyError,
    PaletteDecodingError,
    SeriesLoaderExhaustedError,
)
from dicomweb_metadata.loader import SeriesLoader, SeriesLoaderHandle
from dicomweb_metadata.models import (
    PaletteColorEntry,
    Series,
    SOPInstance,
    Study,
)
from dicomweb_metadata.protocol import MetadataTransport
from dicomweb_metadata.retrieve import RetrievalOrchestrator, retrieve_metadata
from dicomweb_metadata.server import ServerDescriptor
from dicomweb_metadata.web import DICOMwebTransport

__all__ = [
    'DICOMwebTransport',
    'EmptyStudyError',
    'MetadataTransport',
    'PaletteColorCache',
    'PaletteColorEntry',
    'PaletteDecodingError',
    'RetrievalOrchestrator',
    'SeriesLoader',
    'SeriesLoaderExhaustedError',
    'SeriesLoaderHandle',
    'Series',
    'ServerDescriptor',
    'SOPInstance',
    'Study',
    'default_palette_cache',
    'retrieve_metadata',
]
