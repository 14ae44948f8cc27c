"""Order in which the series of a study are loaded."""
import functools
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from dicomweb_metadata.dataset import (
    Dataset,
    get_element,
    get_number,
    get_string,
    lookup_tag,
)
from dicomweb_metadata.models import SeriesInfo


logger = logging.getLogger(__name__)

#: Modalities of series that don't contain images for display
LOW_PRIORITY_MODALITIES = frozenset(['SEG', 'KO', 'PR', 'SR', 'RTSTRUCT'])

#: Attributes of series search results that determine the load order
ORDERING_FIELDS = ('SeriesInstanceUID', 'Modality', 'SeriesNumber')

_SERIES_INSTANCE_UID, _MODALITY, _SERIES_NUMBER = [
    lookup_tag(keyword) for keyword in ORDERING_FIELDS
]


def is_low_priority_modality(modality: Optional[str]) -> bool:
    """Whether series of a given modality should be loaded last.

    Parameters
    ----------
    modality: Union[str, None]
        Modality (e.g. ``"SEG"``)

    Returns
    -------
    bool
        ``True`` for segmentations, key object selections, presentation
        states, structured reports and RT structure sets

    """
    if not modality:
        return False
    return modality.upper() in LOW_PRIORITY_MODALITIES


class SeriesOrderingPolicy:

    """Sorts and filters series search results.

    Series of low priority modalities are placed after all other series;
    series of the same priority class are ordered by ascending Series
    Number. The information that determines the order is computed once per
    series and kept in a side table, so that the order is stable even if
    the classification function is not.

    Attributes
    ----------
    fields: Tuple[str, ...]
        Keywords of the attributes of series search results that
        determine the order

    """

    fields: Tuple[str, ...] = ORDERING_FIELDS

    def __init__(
        self,
        is_low_priority: Callable[[str], bool] = is_low_priority_modality
    ) -> None:
        self._is_low_priority = is_low_priority
        self._infos: Dict[str, SeriesInfo] = {}
        # results without Series Instance UID, valid during one `order` call
        self._anonymous_infos: Dict[int, SeriesInfo] = {}

    def series_info(self, series: Dataset) -> SeriesInfo:
        """Get the information of a series that determines its order.

        Parameters
        ----------
        series: Dict[str, Dict[str, Any]]
            Series search result in DICOM JSON format

        Returns
        -------
        dicomweb_metadata.models.SeriesInfo
            Information of the series

        """
        uid = get_string(get_element(series, _SERIES_INSTANCE_UID))
        if uid is not None:
            infos: Dict[Any, SeriesInfo] = self._infos
            key: Union[str, int] = uid
        else:
            infos = self._anonymous_infos
            key = id(series)
        info = infos.get(key)
        if info is None:
            modality = get_string(get_element(series, _MODALITY), '').upper()
            info = SeriesInfo(
                modality=modality,
                is_low_priority=bool(self._is_low_priority(modality)),
                series_instance_uid=uid,
                series_number=get_number(
                    get_element(series, _SERIES_NUMBER), 0
                ) or 0,
            )
            infos[key] = info
        return info

    def compare(self, first: Dataset, second: Dataset) -> int:
        """Compare two series.

        Parameters
        ----------
        first: Dict[str, Dict[str, Any]]
            Series search result in DICOM JSON format
        second: Dict[str, Dict[str, Any]]
            Series search result in DICOM JSON format

        Returns
        -------
        int
            negative if `first` should be loaded before `second`, positive
            if it should be loaded after `second`, zero otherwise

        """
        a = self.series_info(first)
        b = self.series_info(second)
        if not a.is_low_priority and b.is_low_priority:
            return -1
        if a.is_low_priority and not b.is_low_priority:
            return 1
        if a.series_number < b.series_number:
            return -1
        if a.series_number > b.series_number:
            return 1
        return 0

    def filter(
        self,
        series_list: Sequence[Dataset],
        series_instance_uid: Optional[str] = None
    ) -> List[Dataset]:
        """Filter series by Series Instance UID.

        Parameters
        ----------
        series_list: Sequence[Dict[str, Dict[str, Any]]]
            Series search results in DICOM JSON format
        series_instance_uid: Union[str, None], optional
            Series Instance UID of the series of interest

        Returns
        -------
        List[Dict[str, Dict[str, Any]]]
            Matching series (all series if `series_instance_uid` is not
            provided)

        """
        if not series_instance_uid:
            return list(series_list)
        return [
            s for s in series_list
            if self.series_info(s).series_instance_uid == series_instance_uid
        ]

    def sort(self, series_list: Sequence[Dataset]) -> List[Dataset]:
        """Sort series in the order in which they should be loaded."""
        return sorted(series_list, key=functools.cmp_to_key(self.compare))

    def order(
        self,
        series_list: Sequence[Dataset],
        series_instance_uid: Optional[str] = None
    ) -> List[str]:
        """Determine the order in which series should be loaded.

        Parameters
        ----------
        series_list: Sequence[Dict[str, Dict[str, Any]]]
            Series search results in DICOM JSON format
        series_instance_uid: Union[str, None], optional
            Series Instance UID of the series of interest; if no series
            matches, all series are considered

        Returns
        -------
        List[str]
            Series Instance UIDs

        """
        self._anonymous_infos.clear()
        try:
            filtered = self.filter(series_list, series_instance_uid)
            if not filtered:
                if series_instance_uid:
                    logger.warning(
                        f'series "{series_instance_uid}" not found, '
                        'load all series of study'
                    )
                filtered = list(series_list)
            return [
                self.series_info(s).series_instance_uid
                for s in self.sort(filtered)
            ]
        finally:
            self._anonymous_infos.clear()
