"""Normalization of instance metadata into Study, Series and SOP Instance
descriptors."""
import dataclasses
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import List, Optional, Sequence

from dicomweb_metadata.bulkdata import BulkDataFetcher
from dicomweb_metadata.dataset import (
    Dataset,
    get_element,
    get_name,
    get_number,
    get_sequence_items,
    get_string,
    get_value,
    parse_float_array,
)
from dicomweb_metadata.models import (
    RadiopharmaceuticalInfo,
    Series,
    SOPInstance,
    Study,
)
from dicomweb_metadata.server import ServerDescriptor
from dicomweb_metadata.uri import (
    build_instance_frame_wado_rs_uri,
    build_instance_wado_rs_uri,
    build_instance_wado_uri,
)


logger = logging.getLogger(__name__)

PALETTE_COLOR = 'PALETTE COLOR'

_FRAME_INCREMENT_POINTERS = {
    '00181065': 'frame_time_vector',
    '00181063': 'frame_time',
}


def create_study(server: ServerDescriptor, dataset: Dataset) -> Study:
    """Create a study descriptor.

    Parameters
    ----------
    server: dicomweb_metadata.server.ServerDescriptor
        Server the metadata was retrieved from
    dataset: Dict[str, Dict[str, Any]]
        Metadata of an instance of the study in DICOM JSON format, from
        which the study-level attributes are read

    Returns
    -------
    dicomweb_metadata.models.Study
        Study without any series

    """
    def attr(tag):
        return get_element(dataset, tag)

    return Study(
        study_instance_uid=get_string(attr('0020000D')),
        accession_number=get_string(attr('00080050')),
        patient_name=get_name(attr('00100010')),
        patient_id=get_string(attr('00100020')),
        patient_age=get_number(attr('00101010')),
        patient_size=get_number(attr('00101020')),
        patient_weight=get_number(attr('00101030')),
        study_date=get_string(attr('00080020')),
        modalities=get_string(attr('00080061')),
        study_description=get_string(attr('00081030')),
        image_count=get_string(attr('00201208')),
        institution_name=get_string(attr('00080080')),
        wado_uri_root=server.wado_uri_root,
        wado_root=server.wado_root,
        qido_root=server.qido_root,
    )


def get_source_image_instance_uid(dataset: Dataset) -> Optional[str]:
    """Get the Referenced SOP Instance UID of the first item of the Source
    Image Sequence, which identifies the image in accompanying Structured
    Report documents."""
    items = get_sequence_items(get_element(dataset, '00082112'))
    if not items:
        return None
    return get_string(get_element(items[0], '00081155'))


def get_frame_increment_pointer(dataset: Dataset) -> Optional[str]:
    """Get the name of the attribute the Frame Increment Pointer refers to."""
    value = get_value(get_element(dataset, '00280009'))
    if value is None:
        return None
    return _FRAME_INCREMENT_POINTERS.get(str(value).upper())


def get_radiopharmaceutical_info(
    dataset: Dataset
) -> Optional[RadiopharmaceuticalInfo]:
    """Get the radiopharmaceutical information of a PET image.

    Parameters
    ----------
    dataset: Dict[str, Dict[str, Any]]
        Metadata of the instance in DICOM JSON format

    Returns
    -------
    Union[dicomweb_metadata.models.RadiopharmaceuticalInfo, None]
        Information from the first item of the Radiopharmaceutical
        Information Sequence or ``None`` in case the instance is not a PET
        image or has no such sequence

    """
    modality = get_string(get_element(dataset, '00080060'))
    if modality != 'PT':
        return None
    items = get_sequence_items(get_element(dataset, '00540016'))
    if not items:
        return None
    item = items[0]
    return RadiopharmaceuticalInfo(
        radiopharmaceutical_start_time=get_string(
            get_element(item, '00181072')
        ),
        radionuclide_total_dose=get_number(get_element(item, '00181074')),
        radionuclide_half_life=get_number(get_element(item, '00181075')),
    )


class InstanceNormalizer:

    """Folds instance metadata into a study descriptor.

    Instances of a retrieval are normalized concurrently. The series of a
    study are created in the order in which they first occur in the
    metadata, whereas instances are added to their series in the order in
    which their normalization completes.

    """

    def __init__(
        self,
        server: ServerDescriptor,
        fetcher: BulkDataFetcher,
        max_workers: int = 8
    ) -> None:
        """Instantiate normalizer.

        Parameters
        ----------
        server: dicomweb_metadata.server.ServerDescriptor
            Server the metadata is retrieved from
        fetcher: dicomweb_metadata.bulkdata.BulkDataFetcher
            Fetcher for palette color lookup tables
        max_workers: int, optional
            Maximum number of instances that are normalized concurrently

        """
        if max_workers < 1:
            raise ValueError('Maximum number of workers must be positive.')
        self._server = server
        self._fetcher = fetcher
        self._max_workers = max_workers
        self._lock = threading.Lock()

    def _get_or_create_series(self, study: Study, dataset: Dataset) -> Series:
        series_instance_uid = get_string(get_element(dataset, '0020000E'))
        with self._lock:
            series = study.get_series(series_instance_uid)
            if series is None:
                logger.debug(f'add series "{series_instance_uid}" to study')
                series = Series(
                    series_instance_uid=series_instance_uid,
                    series_description=get_string(
                        get_element(dataset, '0008103E')
                    ),
                    modality=get_string(get_element(dataset, '00080060')),
                    series_number=get_number(get_element(dataset, '00200011')),
                    series_date=get_string(get_element(dataset, '00080021')),
                    series_time=get_string(get_element(dataset, '00080031')),
                )
                study.add_series(series)
            return series

    def _build_instance(self, study: Study, dataset: Dataset) -> SOPInstance:
        server = self._server

        def attr(tag):
            return get_element(dataset, tag)

        study_instance_uid = study.study_instance_uid
        series_instance_uid = get_string(attr('0020000E'))
        sop_instance_uid = get_string(attr('00080018'))
        return SOPInstance(
            image_type=get_string(attr('00080008')),
            sop_class_uid=get_string(attr('00080016')),
            modality=get_string(attr('00080060')),
            sop_instance_uid=sop_instance_uid,
            instance_number=get_number(attr('00200013')),
            image_position_patient=get_string(attr('00200032')),
            image_orientation_patient=get_string(attr('00200037')),
            frame_of_reference_uid=get_string(attr('00200052')),
            slice_location=get_number(attr('00201041')),
            samples_per_pixel=get_number(attr('00280002')),
            photometric_interpretation=get_string(attr('00280004')),
            planar_configuration=get_number(attr('00280006')),
            rows=get_number(attr('00280010')),
            columns=get_number(attr('00280011')),
            pixel_spacing=get_string(attr('00280030')),
            pixel_aspect_ratio=get_string(attr('00280034')),
            bits_allocated=get_number(attr('00280100')),
            bits_stored=get_number(attr('00280101')),
            high_bit=get_number(attr('00280102')),
            pixel_representation=get_number(attr('00280103')),
            smallest_pixel_value=get_number(attr('00280106')),
            largest_pixel_value=get_number(attr('00280107')),
            window_center=get_string(attr('00281050')),
            window_width=get_string(attr('00281051')),
            rescale_intercept=get_number(attr('00281052')),
            rescale_slope=get_number(attr('00281053')),
            rescale_type=get_number(attr('00281054')),
            source_image_instance_uid=get_source_image_instance_uid(dataset),
            laterality=get_string(attr('00200062')),
            view_position=get_string(attr('00185101')),
            acquisition_date_time=get_string(attr('0008002A')),
            number_of_frames=get_number(attr('00280008')),
            frame_increment_pointer=get_frame_increment_pointer(dataset),
            frame_time=get_number(attr('00181063')),
            frame_time_vector=parse_float_array(get_string(attr('00181065'))),
            slice_thickness=get_number(attr('00180050')),
            spacing_between_slices=get_string(attr('00180088')),
            lossy_image_compression=get_string(attr('00282110')),
            derivation_description=get_string(attr('00282111')),
            lossy_image_compression_ratio=get_string(attr('00282112')),
            lossy_image_compression_method=get_string(attr('00282114')),
            echo_number=get_string(attr('00180086')),
            contrast_bolus_agent=get_string(attr('00180010')),
            radiopharmaceutical_info=get_radiopharmaceutical_info(dataset),
            base_wado_rs_uri=build_instance_wado_rs_uri(
                server.wado_root,
                study_instance_uid,
                series_instance_uid,
                sop_instance_uid
            ),
            wado_uri=build_instance_wado_uri(
                server.wado_uri_root,
                study_instance_uid,
                series_instance_uid,
                sop_instance_uid
            ),
            wado_rs_uri=build_instance_frame_wado_rs_uri(
                server.wado_root,
                study_instance_uid,
                series_instance_uid,
                sop_instance_uid
            ),
            wado_root=server.wado_root,
            image_rendering=server.image_rendering,
            thumbnail_rendering=server.thumbnail_rendering,
        )

    def _add_palette(self, instance: SOPInstance, dataset: Dataset) -> None:
        red_descriptor = parse_float_array(
            get_string(get_element(dataset, '00281101'))
        )
        green_descriptor = parse_float_array(
            get_string(get_element(dataset, '00281102'))
        )
        blue_descriptor = parse_float_array(
            get_string(get_element(dataset, '00281103'))
        )
        palette = self._fetcher.fetch_palette(dataset, red_descriptor)
        if palette.uid:
            instance.palette_color_lookup_table_uid = palette.uid
        instance.red_palette_color_lookup_table_data = palette.red
        instance.green_palette_color_lookup_table_data = palette.green
        instance.blue_palette_color_lookup_table_data = palette.blue
        instance.red_palette_color_lookup_table_descriptor = red_descriptor
        instance.green_palette_color_lookup_table_descriptor = green_descriptor
        instance.blue_palette_color_lookup_table_descriptor = blue_descriptor

    def normalize(self, study: Study, dataset: Dataset) -> SOPInstance:
        """Normalize the metadata of an instance and add it to its series.

        The series is created if the study doesn't contain it yet.

        Parameters
        ----------
        study: dicomweb_metadata.models.Study
            Study the instance belongs to
        dataset: Dict[str, Dict[str, Any]]
            Metadata of the instance in DICOM JSON format

        Returns
        -------
        dicomweb_metadata.models.SOPInstance
            Instance

        """
        series = self._get_or_create_series(study, dataset)
        instance = self._build_instance(study, dataset)
        if instance.photometric_interpretation == PALETTE_COLOR:
            self._add_palette(instance, dataset)
        with self._lock:
            existing = series.get_instance(instance.sop_instance_uid)
            if existing is not None:
                logger.warning(
                    f'instance "{instance.sop_instance_uid}" occurs more '
                    f'than once in series "{series.series_instance_uid}"'
                )
                return existing
            series.add_instance(instance)
        return instance

    def normalize_all(
        self,
        study: Study,
        datasets: Sequence[Dataset]
    ) -> List[SOPInstance]:
        """Normalize the metadata of instances concurrently.

        Parameters
        ----------
        study: dicomweb_metadata.models.Study
            Study the instances belong to
        datasets: Sequence[Dict[str, Dict[str, Any]]]
            Metadata of the instances in DICOM JSON format

        Returns
        -------
        List[dicomweb_metadata.models.SOPInstance]
            Instances in the order of `datasets`

        Raises
        ------
        Exception
            The first error (in the order of `datasets`) raised while
            normalizing an instance, once all instances have been processed;
            `study` is left unchanged in that case

        Note
        ----
        Instances are normalized into a copy of `study` without series,
        which is merged into `study` only after every instance has been
        normalized successfully.

        """
        staging = dataclasses.replace(
            study,
            series_list=[],
            series_map={},
            series_loader=None
        )
        for dataset in datasets:
            self._get_or_create_series(staging, dataset)
        logger.debug(f'normalize {len(datasets)} instances')
        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            futures = [
                executor.submit(self.normalize, staging, dataset)
                for dataset in datasets
            ]
            wait(futures)
        instances = [f.result() for f in futures]
        self._merge(study, staging)
        return instances

    def _merge(self, study: Study, staging: Study) -> None:
        with self._lock:
            for series in staging.series_list:
                existing = study.get_series(series.series_instance_uid)
                if existing is None:
                    study.add_series(series)
                    continue
                for instance in series.instances:
                    uid = instance.sop_instance_uid
                    if existing.get_instance(uid) is not None:
                        logger.warning(
                            f'instance "{uid}" occurs more than once in '
                            f'series "{series.series_instance_uid}"'
                        )
                        continue
                    existing.add_instance(instance)
