"""Retrieval of Palette Color Lookup Table Data referenced as bulk data."""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

import numpy as np

from dicomweb_metadata.cache import PaletteColorCache, default_palette_cache
from dicomweb_metadata.dataset import (
    Dataset,
    get_bulkdata_uri,
    get_element,
    get_string,
)
from dicomweb_metadata.error import DICOMJSONError, PaletteDecodingError
from dicomweb_metadata.models import PaletteColorEntry
from dicomweb_metadata.protocol import MetadataTransport
from dicomweb_metadata.uri import rewrite_bulkdata_uri


logger = logging.getLogger(__name__)

PALETTE_COLOR_LOOKUP_TABLE_UID = '00281199'
RED_PALETTE_COLOR_LOOKUP_TABLE_DATA = '00281201'
GREEN_PALETTE_COLOR_LOOKUP_TABLE_DATA = '00281202'
BLUE_PALETTE_COLOR_LOOKUP_TABLE_DATA = '00281203'


def decode_lookup_table(
    data: bytes,
    lut_descriptor: Sequence[float]
) -> List[int]:
    """Decode Palette Color Lookup Table Data.

    Parameters
    ----------
    data: bytes
        Lookup table data in little endian byte order
    lut_descriptor: Sequence[float]
        Palette Color Lookup Table Descriptor: number of entries, first
        mapped pixel value and number of bits per entry

    Returns
    -------
    List[int]
        Lookup table entries

    Raises
    ------
    dicomweb_metadata.error.PaletteDecodingError
        When the descriptor is incomplete or `data` contains fewer entries
        than described

    """
    if len(lut_descriptor) < 3:
        raise PaletteDecodingError(
            'Lookup table descriptor must have three values, '
            f'got {len(lut_descriptor)}.'
        )
    try:
        number_of_entries = int(lut_descriptor[0])
        bits = int(lut_descriptor[2])
    except (TypeError, ValueError, OverflowError) as error:
        raise PaletteDecodingError(
            f'Lookup table descriptor is invalid: {lut_descriptor}'
        ) from error
    # a value of zero denotes 2^16 entries (see PS3.3 C.7.6.3.1.5)
    if number_of_entries == 0:
        number_of_entries = 2**16
    if number_of_entries < 0:
        raise PaletteDecodingError(
            f'Number of lookup table entries is negative: {number_of_entries}'
        )
    if bits == 16:
        dtype = np.dtype('<u2')
    else:
        dtype = np.dtype('u1')
    expected_length = number_of_entries * dtype.itemsize
    if len(data) < expected_length:
        raise PaletteDecodingError(
            f'Lookup table data has {len(data)} bytes, but '
            f'{number_of_entries} entries of {bits} bits require '
            f'{expected_length} bytes.'
        )
    lut = np.frombuffer(data, dtype=dtype, count=number_of_entries)
    return lut.tolist()


class BulkDataFetcher:

    """Fetches and caches Palette Color Lookup Table Data of instances.

    The three color channels of a palette are fetched concurrently.

    """

    def __init__(
        self,
        transport: MetadataTransport,
        wado_root: str = '',
        cache: Optional[PaletteColorCache] = None
    ) -> None:
        """Instantiate fetcher.

        Parameters
        ----------
        transport: dicomweb_metadata.protocol.MetadataTransport
            Transport for retrieving bulk data
        wado_root: str, optional
            Base URL of the WADO-RS service the bulk data URIs refer to
        cache: Union[dicomweb_metadata.cache.PaletteColorCache, None], optional
            Cache of palettes (defaults to the process-wide cache)

        """
        self._transport = transport
        self._wado_root = wado_root
        if cache is None:
            cache = default_palette_cache
        self.cache = cache

    def fetch_channel(
        self,
        instance: Dataset,
        tag: str,
        lut_descriptor: Sequence[float]
    ) -> List[int]:
        """Fetch the lookup table data of one color channel.

        Parameters
        ----------
        instance: Dict[str, Dict[str, Any]]
            Metadata of the instance in DICOM JSON format
        tag: str
            Tag of the Palette Color Lookup Table Data attribute
            (e.g. ``"00281201"``)
        lut_descriptor: Sequence[float]
            Palette Color Lookup Table Descriptor

        Returns
        -------
        List[int]
            Lookup table entries

        Raises
        ------
        dicomweb_metadata.error.DICOMJSONError
            When the attribute doesn't reference bulk data
        dicomweb_metadata.error.PaletteDecodingError
            When the retrieved bulk data cannot be decoded

        """
        uri = get_bulkdata_uri(get_element(instance, tag))
        if not uri:
            raise DICOMJSONError(
                f'Attribute "{tag}" does not reference bulk data.'
            )
        uri = rewrite_bulkdata_uri(uri, self._wado_root)
        items = self._transport.retrieve_bulkdata(uri)
        if not items:
            raise PaletteDecodingError(f'No bulk data found at "{uri}".')
        return decode_lookup_table(items[0], lut_descriptor)

    def _fetch_channels(
        self,
        instance: Dataset,
        lut_descriptor: Sequence[float],
        uid: Optional[str]
    ) -> PaletteColorEntry:
        tags = (
            RED_PALETTE_COLOR_LOOKUP_TABLE_DATA,
            GREEN_PALETTE_COLOR_LOOKUP_TABLE_DATA,
            BLUE_PALETTE_COLOR_LOOKUP_TABLE_DATA,
        )
        with ThreadPoolExecutor(max_workers=len(tags)) as executor:
            futures = [
                executor.submit(self.fetch_channel, instance, tag,
                                lut_descriptor)
                for tag in tags
            ]
            red, green, blue = [f.result() for f in futures]
        return PaletteColorEntry(red=red, green=green, blue=blue, uid=uid)

    def fetch_palette(
        self,
        instance: Dataset,
        red_lut_descriptor: Sequence[float]
    ) -> PaletteColorEntry:
        """Fetch the red, green and blue lookup table data of an instance.

        Palettes with a Palette Color Lookup Table UID are served from the
        cache when possible and stored in the cache otherwise.

        Parameters
        ----------
        instance: Dict[str, Dict[str, Any]]
            Metadata of the instance in DICOM JSON format
        red_lut_descriptor: Sequence[float]
            Red Palette Color Lookup Table Descriptor

        Returns
        -------
        dicomweb_metadata.models.PaletteColorEntry
            Palette

        Note
        ----
        The red descriptor is used to decode all three channels, i.e., the
        descriptors of the three channels are assumed to be identical.

        """
        uid = get_string(get_element(instance, PALETTE_COLOR_LOOKUP_TABLE_UID))
        if not self.cache.is_valid_key(uid):
            logger.debug('fetch palette without UID')
            return self._fetch_channels(instance, red_lut_descriptor, uid)

        return self.cache.get_or_fetch(
            uid,
            lambda: self._fetch_channels(instance, red_lut_descriptor, uid)
        )
