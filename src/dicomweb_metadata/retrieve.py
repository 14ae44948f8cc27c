"""Retrieval of study metadata from a DICOMweb server."""
import logging
from enum import Enum
from typing import Any, List, Mapping, Optional

import requests

from dicomweb_metadata.bulkdata import BulkDataFetcher
from dicomweb_metadata.cache import PaletteColorCache
from dicomweb_metadata.dataset import Dataset
from dicomweb_metadata.error import EmptyStudyError
from dicomweb_metadata.loader import SeriesLoader, SeriesLoaderHandle
from dicomweb_metadata.models import Study
from dicomweb_metadata.normalize import InstanceNormalizer, create_study
from dicomweb_metadata.ordering import SeriesOrderingPolicy
from dicomweb_metadata.protocol import MetadataTransport
from dicomweb_metadata.server import ServerDescriptor
from dicomweb_metadata.session_utils import create_session_from_server
from dicomweb_metadata.web import DICOMwebTransport


logger = logging.getLogger(__name__)

_SERIES_FILTER_KEYS = (
    'series_instance_uid',
    'seriesInstanceUid',
    'seriesInstanceUID',
    'SeriesInstanceUID',
)


class RetrievalStrategy(Enum):

    """How the series of a study are retrieved."""

    EAGER = 'eager'
    LAZY = 'lazy'


def _get_series_filter(filters: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not filters:
        return None
    for key in _SERIES_FILTER_KEYS:
        value = filters.get(key)
        if value:
            return value
    return None


def create_transport(
    server: ServerDescriptor,
    session: Optional[requests.Session] = None
) -> DICOMwebTransport:
    """Create a transport for the WADO-RS and QIDO-RS services of a server.

    Parameters
    ----------
    server: dicomweb_metadata.server.ServerDescriptor
        Server to retrieve metadata from
    session: Union[requests.Session, None], optional
        Session for requests to the server (defaults to a session that is
        authorized with the credentials of `server`)

    Returns
    -------
    dicomweb_metadata.web.DICOMwebTransport
        Transport

    """
    if session is None:
        session = create_session_from_server(server)
    return DICOMwebTransport(
        url=server.wado_root,
        qido_url=server.qido_root,
        session=session,
    )


class RetrievalOrchestrator:

    """Retrieves the metadata of studies from a server.

    Studies are either retrieved eagerly, with all series in a single
    request, or lazily, one series at a time. In lazy mode, only the first
    series is loaded and the returned study provides a `series_loader` for
    loading the remaining series on demand.

    """

    def __init__(
        self,
        server: ServerDescriptor,
        transport: Optional[MetadataTransport] = None,
        palette_cache: Optional[PaletteColorCache] = None,
        ordering_policy: Optional[SeriesOrderingPolicy] = None,
        lazy: Optional[bool] = None,
        max_workers: int = 8
    ) -> None:
        """Instantiate orchestrator.

        Parameters
        ----------
        server: dicomweb_metadata.server.ServerDescriptor
            Server to retrieve metadata from
        transport: Union[dicomweb_metadata.protocol.MetadataTransport, None], optional
            Transport for requests to the server (defaults to a
            ``dicomweb_metadata.web.DICOMwebTransport``)
        palette_cache: Union[dicomweb_metadata.cache.PaletteColorCache, None], optional
            Cache of palettes (defaults to the process-wide cache)
        ordering_policy: Union[dicomweb_metadata.ordering.SeriesOrderingPolicy, None], optional
            Order in which series are loaded in lazy mode
        lazy: Union[bool, None], optional
            Whether series should be loaded lazily; if ``None``, the
            `enable_study_lazy_load` flag of `server` decides
        max_workers: int, optional
            Maximum number of instances that are normalized concurrently

        """  # noqa: E501
        self._server = server
        if transport is None:
            transport = create_transport(server)
        self._transport = transport
        self._fetcher = BulkDataFetcher(
            transport,
            wado_root=server.wado_root,
            cache=palette_cache
        )
        self._normalizer = InstanceNormalizer(
            server,
            self._fetcher,
            max_workers=max_workers
        )
        if ordering_policy is None:
            ordering_policy = SeriesOrderingPolicy()
        self._ordering_policy = ordering_policy
        self._lazy = lazy

    def select_strategy(self) -> RetrievalStrategy:
        """Select how series are retrieved.

        Returns
        -------
        dicomweb_metadata.retrieve.RetrievalStrategy
            Lazy if requested for the orchestrator or, in case that is
            undecided, enabled for the server; eager otherwise

        """
        lazy = self._lazy
        if lazy is None:
            lazy = self._server.enable_study_lazy_load
        if lazy:
            return RetrievalStrategy.LAZY
        return RetrievalStrategy.EAGER

    def _create_study(self, datasets: List[Dataset]) -> Study:
        if not isinstance(datasets, list) or len(datasets) == 0:
            raise EmptyStudyError(
                'Failed to create study out of provided SOP instance list.'
            )
        study = create_study(self._server, datasets[0])
        self._normalizer.normalize_all(study, datasets)
        return study

    def retrieve(
        self,
        study_instance_uid: str,
        filters: Optional[Mapping[str, Any]] = None
    ) -> Study:
        """Retrieve the metadata of a study.

        Parameters
        ----------
        study_instance_uid: str
            Study Instance UID
        filters: Union[Mapping[str, Any], None], optional
            Retrieval filters; ``"series_instance_uid"`` narrows the
            retrieval to the given series

        Returns
        -------
        dicomweb_metadata.models.Study
            Study

        Raises
        ------
        dicomweb_metadata.error.EmptyStudyError
            When no instances were found
        requests.exceptions.HTTPError
            When a request to the server failed

        """
        strategy = self.select_strategy()
        logger.info(
            f'retrieve metadata of study "{study_instance_uid}" '
            f'({strategy.value})'
        )
        if strategy == RetrievalStrategy.LAZY:
            return self._retrieve_lazy(study_instance_uid, filters)
        return self._retrieve_eager(study_instance_uid, filters)

    def _retrieve_eager(
        self,
        study_instance_uid: str,
        filters: Optional[Mapping[str, Any]] = None
    ) -> Study:
        series_instance_uid = _get_series_filter(filters)
        if series_instance_uid:
            try:
                datasets = self._transport.retrieve_series_metadata(
                    study_instance_uid,
                    series_instance_uid
                )
            except Exception as error:
                logger.warning(
                    f'retrieval of series "{series_instance_uid}" failed, '
                    f'retrieve whole study instead: {error}'
                )
                datasets = self._transport.retrieve_study_metadata(
                    study_instance_uid
                )
        else:
            datasets = self._transport.retrieve_study_metadata(
                study_instance_uid
            )
        return self._create_study(datasets)

    def _retrieve_lazy(
        self,
        study_instance_uid: str,
        filters: Optional[Mapping[str, Any]] = None
    ) -> Study:
        series_list = self._transport.search_for_series(
            study_instance_uid,
            fields=list(self._ordering_policy.fields)
        )
        series_instance_uids = self._ordering_policy.order(
            series_list,
            _get_series_filter(filters)
        )
        loader = SeriesLoader(
            self._transport,
            study_instance_uid,
            series_instance_uids
        )
        if not loader.has_next():
            raise EmptyStudyError(
                f'No series found for study "{study_instance_uid}".'
            )
        first_series = loader.next()
        study = self._create_study(first_series.instances)
        if loader.has_next():
            study.series_loader = SeriesLoaderHandle(
                loader,
                self._normalizer,
                study
            )
        return study


def retrieve_metadata(
    server: ServerDescriptor,
    study_instance_uid: str,
    filters: Optional[Mapping[str, Any]] = None,
    *,
    transport: Optional[MetadataTransport] = None,
    palette_cache: Optional[PaletteColorCache] = None,
    lazy: Optional[bool] = None
) -> Study:
    """Retrieve the metadata of a study from a server.

    Parameters
    ----------
    server: dicomweb_metadata.server.ServerDescriptor
        Server to retrieve metadata from
    study_instance_uid: str
        Study Instance UID
    filters: Union[Mapping[str, Any], None], optional
        Retrieval filters; ``"series_instance_uid"`` narrows the retrieval
        to the given series (in eager mode, the whole study is retrieved in
        case the series cannot be retrieved)
    transport: Union[dicomweb_metadata.protocol.MetadataTransport, None], optional
        Transport for requests to the server
    palette_cache: Union[dicomweb_metadata.cache.PaletteColorCache, None], optional
        Cache of palettes (defaults to the process-wide cache)
    lazy: Union[bool, None], optional
        Whether series should be loaded lazily; if ``None``, the
        `enable_study_lazy_load` flag of `server` decides

    Returns
    -------
    dicomweb_metadata.models.Study
        Study; in lazy mode, ``Study.series_loader`` loads the remaining
        series, if any

    """  # noqa: E501
    orchestrator = RetrievalOrchestrator(
        server,
        transport=transport,
        palette_cache=palette_cache,
        lazy=lazy
    )
    return orchestrator.retrieve(study_instance_uid, filters)
