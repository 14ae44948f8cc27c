import logging
import threading

import pytest

from dicomweb_metadata.bulkdata import BulkDataFetcher
from dicomweb_metadata.cache import PaletteColorCache
from dicomweb_metadata.cli import _get_parser
from dicomweb_metadata.error import HTTPError
from dicomweb_metadata.normalize import InstanceNormalizer
from dicomweb_metadata.server import ServerDescriptor
from dicomweb_metadata.web import DICOMwebTransport


STUDY_INSTANCE_UID = '1.2.826.0.1.3680043.8.498.1'


class StubTransport:

    '''In-memory implementation of
    `dicomweb_metadata.protocol.MetadataTransport` that records requests.'''

    def __init__(self):
        self.studies = {}
        self.series = {}
        self.series_search = {}
        self.search_fields = []
        self.bulkdata = {}
        self.failing_studies = set()
        self.failing_series = set()
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)

    def count(self, kind):
        return len([c for c in self.calls if c[0] == kind])

    def retrieve_study_metadata(self, study_instance_uid):
        self._record('study', study_instance_uid)
        if study_instance_uid in self.failing_studies:
            raise HTTPError('500 Server Error: Internal Server Error')
        return list(self.studies.get(study_instance_uid, []))

    def retrieve_series_metadata(self, study_instance_uid, series_instance_uid):
        self._record('series', study_instance_uid, series_instance_uid)
        if series_instance_uid in self.failing_series:
            raise HTTPError('404 Client Error: Not Found')
        key = (study_instance_uid, series_instance_uid)
        return list(self.series.get(key, []))

    def search_for_series(self, study_instance_uid=None, fields=None,
                          search_filters=None):
        self._record('search', study_instance_uid)
        self.search_fields.append(fields)
        return list(self.series_search.get(study_instance_uid, []))

    def retrieve_bulkdata(self, url):
        self._record('bulkdata', url)
        return list(self.bulkdata.get(url, []))


class FakeClock:

    '''Clock that only advances when told to.'''

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _make_instance(
    series_instance_uid,
    sop_instance_uid,
    modality='CT',
    series_number=1,
    instance_number=1,
    study_instance_uid=STUDY_INSTANCE_UID,
    **elements
):
    dataset = {
        '0020000D': {'vr': 'UI', 'Value': [study_instance_uid]},
        '0020000E': {'vr': 'UI', 'Value': [series_instance_uid]},
        '00080018': {'vr': 'UI', 'Value': [sop_instance_uid]},
        '00080016': {'vr': 'UI', 'Value': ['1.2.840.10008.5.1.4.1.1.2']},
        '00080060': {'vr': 'CS', 'Value': [modality]},
        '00200011': {'vr': 'IS', 'Value': [series_number]},
        '00200013': {'vr': 'IS', 'Value': [instance_number]},
        '00100010': {'vr': 'PN', 'Value': [{'Alphabetic': 'Doe^Jane'}]},
        '00100020': {'vr': 'LO', 'Value': ['PAT-001']},
        '00080050': {'vr': 'SH', 'Value': ['ACC-42']},
        '00080020': {'vr': 'DA', 'Value': ['20240131']},
        '00081030': {'vr': 'LO', 'Value': ['Chest']},
        '00280004': {'vr': 'CS', 'Value': ['MONOCHROME2']},
        '00280010': {'vr': 'US', 'Value': [512]},
        '00280011': {'vr': 'US', 'Value': [512]},
    }
    dataset.update(elements)
    return dataset


def _make_series_result(series_instance_uid, modality='CT', series_number=1):
    return {
        '0020000D': {'vr': 'UI', 'Value': [STUDY_INSTANCE_UID]},
        '0020000E': {'vr': 'UI', 'Value': [series_instance_uid]},
        '00080060': {'vr': 'CS', 'Value': [modality]},
        '00200011': {'vr': 'IS', 'Value': [series_number]},
    }


def _make_palette_elements(uid=None, base_url='http://pacs.example.com/rs'):
    elements = {
        '00280004': {'vr': 'CS', 'Value': ['PALETTE COLOR']},
        '00281101': {'vr': 'US', 'Value': [4, 0, 8]},
        '00281102': {'vr': 'US', 'Value': [4, 0, 8]},
        '00281103': {'vr': 'US', 'Value': [4, 0, 8]},
        '00281201': {'vr': 'OW', 'BulkDataURI': f'{base_url}/bulk/red'},
        '00281202': {'vr': 'OW', 'BulkDataURI': f'{base_url}/bulk/green'},
        '00281203': {'vr': 'OW', 'BulkDataURI': f'{base_url}/bulk/blue'},
    }
    if uid is not None:
        elements['00281199'] = {'vr': 'UI', 'Value': [uid]}
    return elements


@pytest.fixture
def parser():
    '''Instance of `argparse.Argparser`.'''
    return _get_parser()


@pytest.fixture
def study_instance_uid():
    return STUDY_INSTANCE_UID


@pytest.fixture
def make_instance():
    '''Factory of instance metadata in DICOM JSON format.'''
    return _make_instance


@pytest.fixture
def make_series_result():
    '''Factory of series search results in DICOM JSON format.'''
    return _make_series_result


@pytest.fixture
def make_palette_elements():
    '''Factory of Palette Color Lookup Table attributes.'''
    return _make_palette_elements


@pytest.fixture
def server():
    '''Instance of `dicomweb_metadata.server.ServerDescriptor`.'''
    return ServerDescriptor(
        wado_root='https://pacs.example.com/rs',
        wado_uri_root='https://pacs.example.com/wado',
        name='test',
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def palette_cache(clock):
    '''Instance of `dicomweb_metadata.cache.PaletteColorCache` with a
    controllable clock.'''
    return PaletteColorCache(clock=clock)


@pytest.fixture
def transport():
    return StubTransport()


@pytest.fixture
def fetcher(server, transport, palette_cache):
    '''Instance of `dicomweb_metadata.bulkdata.BulkDataFetcher`.'''
    return BulkDataFetcher(transport, server.wado_root, palette_cache)


@pytest.fixture
def normalizer(server, fetcher):
    '''Instance of `dicomweb_metadata.normalize.InstanceNormalizer`.'''
    return InstanceNormalizer(server, fetcher, max_workers=4)


@pytest.fixture
def client(httpserver):
    '''Instance of `dicomweb_metadata.web.DICOMwebTransport`.'''
    return DICOMwebTransport(httpserver.url)


@pytest.fixture
def restore_logging():
    '''Restores the logging configuration changed by
    `dicomweb_metadata.log.configure_logging`.'''
    names = ('dicomweb_metadata', 'urllib3', 'urllib3.connectionpool')
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    root_level = root_logger.level
    levels = {name: logging.getLogger(name).level for name in names}
    filters = {name: list(logging.getLogger(name).filters) for name in names}
    yield
    root_logger.handlers = handlers
    root_logger.setLevel(root_level)
    for name in names:
        logger = logging.getLogger(name)
        logger.setLevel(levels[name])
        logger.filters = filters[name]
