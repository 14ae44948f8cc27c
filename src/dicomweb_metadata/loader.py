"""Sequential loading of the series of a study."""
import collections
import logging
from typing import TYPE_CHECKING, Deque, Iterable, Optional

from dicomweb_metadata.error import SeriesLoaderExhaustedError
from dicomweb_metadata.models import LoadedSeries, Series, Study
from dicomweb_metadata.protocol import MetadataTransport

if TYPE_CHECKING:
    from dicomweb_metadata.normalize import InstanceNormalizer


logger = logging.getLogger(__name__)


class SeriesLoader:

    """Retrieves the metadata of the series of a study one series at a time.

    The loader is *pending* as long as series remain to be loaded and
    *exhausted* afterwards. Each series is requested at most once, in the
    given order, even if its retrieval fails. A loader cannot be reused.

    """

    def __init__(
        self,
        transport: MetadataTransport,
        study_instance_uid: str,
        series_instance_uids: Iterable[str]
    ) -> None:
        """Instantiate loader.

        Parameters
        ----------
        transport: dicomweb_metadata.protocol.MetadataTransport
            Transport for retrieving series metadata
        study_instance_uid: str
            Study Instance UID
        series_instance_uids: Iterable[str]
            Series Instance UIDs in the order in which the series should be
            loaded

        """
        self._transport = transport
        self._study_instance_uid = study_instance_uid
        self._pending: Deque[str] = collections.deque(series_instance_uids)

    @property
    def study_instance_uid(self) -> str:
        """str: Study Instance UID"""
        return self._study_instance_uid

    def has_next(self) -> bool:
        """Whether series remain to be loaded."""
        return len(self._pending) > 0

    def next(self) -> LoadedSeries:
        """Retrieve the metadata of the next series.

        Returns
        -------
        dicomweb_metadata.models.LoadedSeries
            Metadata of all instances of the series in DICOM JSON format

        Raises
        ------
        dicomweb_metadata.error.SeriesLoaderExhaustedError
            When no series remain to be loaded

        """
        if not self._pending:
            raise SeriesLoaderExhaustedError(
                'All series of study '
                f'"{self._study_instance_uid}" have been loaded.'
            )
        series_instance_uid = self._pending.popleft()
        logger.info(
            f'load series "{series_instance_uid}" '
            f'({len(self._pending)} remaining)'
        )
        instances = self._transport.retrieve_series_metadata(
            self._study_instance_uid,
            series_instance_uid
        )
        return LoadedSeries(
            study_instance_uid=self._study_instance_uid,
            series_instance_uid=series_instance_uid,
            instances=instances,
        )


class SeriesLoaderHandle:

    """Loads the remaining series of a lazily retrieved study into it."""

    __slots__ = ('_loader', '_normalizer', '_study')

    def __init__(
        self,
        loader: SeriesLoader,
        normalizer: 'InstanceNormalizer',
        study: Study
    ) -> None:
        self._loader = loader
        self._normalizer = normalizer
        self._study = study

    def has_next(self) -> bool:
        """Whether series remain to be loaded."""
        return self._loader.has_next()

    def next(self) -> Optional[Series]:
        """Load the next series into the study.

        The series is consumed even if loading fails, in which case the
        study is left as it was before the call.

        Returns
        -------
        Union[dicomweb_metadata.models.Series, None]
            Series with all its instances or ``None`` in case the server
            returned no instances of the series

        Raises
        ------
        dicomweb_metadata.error.SeriesLoaderExhaustedError
            When no series remain to be loaded

        """
        loaded = self._loader.next()
        self._normalizer.normalize_all(self._study, loaded.instances)
        series = self._study.get_series(loaded.series_instance_uid)
        if series is None:
            logger.warning(
                f'series "{loaded.series_instance_uid}" has no instances'
            )
        return series
