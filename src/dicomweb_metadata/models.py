"""Study, Series and SOP Instance descriptors built from DICOM JSON metadata."""
import dataclasses
from typing import Any, Dict, List, Optional, TYPE_CHECKING, Union

from dicomweb_metadata.dataset import Dataset

if TYPE_CHECKING:
    from dicomweb_metadata.loader import SeriesLoaderHandle


Number = Union[int, float]


@dataclasses.dataclass(eq=True, frozen=True)
class RadiopharmaceuticalInfo:
    """Radiopharmaceutical information of a PET image.

    Attributes:
        radiopharmaceutical_start_time: Union[str, None]
            Radiopharmaceutical Start Time (0018,1072)
        radionuclide_total_dose: Union[int, float, None]
            Radionuclide Total Dose (0018,1074) in Bq
        radionuclide_half_life: Union[int, float, None]
            Radionuclide Half Life (0018,1075) in seconds
    """
    radiopharmaceutical_start_time: Optional[str] = None
    radionuclide_total_dose: Optional[Number] = None
    radionuclide_half_life: Optional[Number] = None


@dataclasses.dataclass
class PaletteColorEntry:
    """Red, green and blue Palette Color Lookup Table Data of a palette.

    Attributes:
        red: List[int]
            Red Palette Color Lookup Table Data
        green: List[int]
            Green Palette Color Lookup Table Data
        blue: List[int]
            Blue Palette Color Lookup Table Data
        uid: Union[str, None]
            Palette Color Lookup Table UID (0028,1199)
        created_at: Union[float, None]
            Point in time (seconds) the entry was stored in a cache
    """
    red: List[int]
    green: List[int]
    blue: List[int]
    uid: Optional[str] = None
    created_at: Optional[float] = None


@dataclasses.dataclass(eq=True, frozen=True)
class SeriesInfo:
    """Attributes of a series that determine its retrieval order."""
    modality: str
    is_low_priority: bool
    series_instance_uid: Optional[str]
    series_number: Number


@dataclasses.dataclass
class LoadedSeries:
    """Metadata of all instances of a series retrieved in one loader step."""
    study_instance_uid: str
    series_instance_uid: str
    instances: List[Dataset]


@dataclasses.dataclass
class SOPInstance:
    """Normalized attributes of an individual SOP Instance."""
    sop_instance_uid: Optional[str] = None
    sop_class_uid: Optional[str] = None
    image_type: Optional[str] = None
    modality: Optional[str] = None
    instance_number: Optional[Number] = None
    image_position_patient: Optional[str] = None
    image_orientation_patient: Optional[str] = None
    frame_of_reference_uid: Optional[str] = None
    slice_location: Optional[Number] = None
    samples_per_pixel: Optional[Number] = None
    photometric_interpretation: Optional[str] = None
    planar_configuration: Optional[Number] = None
    rows: Optional[Number] = None
    columns: Optional[Number] = None
    pixel_spacing: Optional[str] = None
    pixel_aspect_ratio: Optional[str] = None
    bits_allocated: Optional[Number] = None
    bits_stored: Optional[Number] = None
    high_bit: Optional[Number] = None
    pixel_representation: Optional[Number] = None
    smallest_pixel_value: Optional[Number] = None
    largest_pixel_value: Optional[Number] = None
    window_center: Optional[str] = None
    window_width: Optional[str] = None
    rescale_intercept: Optional[Number] = None
    rescale_slope: Optional[Number] = None
    rescale_type: Optional[Number] = None
    source_image_instance_uid: Optional[str] = None
    laterality: Optional[str] = None
    view_position: Optional[str] = None
    acquisition_date_time: Optional[str] = None
    number_of_frames: Optional[Number] = None
    frame_increment_pointer: Optional[str] = None
    frame_time: Optional[Number] = None
    frame_time_vector: List[float] = dataclasses.field(default_factory=list)
    slice_thickness: Optional[Number] = None
    spacing_between_slices: Optional[str] = None
    lossy_image_compression: Optional[str] = None
    derivation_description: Optional[str] = None
    lossy_image_compression_ratio: Optional[str] = None
    lossy_image_compression_method: Optional[str] = None
    echo_number: Optional[str] = None
    contrast_bolus_agent: Optional[str] = None
    radiopharmaceutical_info: Optional[RadiopharmaceuticalInfo] = None
    base_wado_rs_uri: Optional[str] = None
    wado_uri: Optional[str] = None
    wado_rs_uri: Optional[str] = None
    wado_root: Optional[str] = None
    image_rendering: Optional[str] = None
    thumbnail_rendering: Optional[str] = None
    palette_color_lookup_table_uid: Optional[str] = None
    red_palette_color_lookup_table_data: Optional[List[int]] = None
    green_palette_color_lookup_table_data: Optional[List[int]] = None
    blue_palette_color_lookup_table_data: Optional[List[int]] = None
    red_palette_color_lookup_table_descriptor: Optional[List[float]] = None
    green_palette_color_lookup_table_descriptor: Optional[List[float]] = None
    blue_palette_color_lookup_table_descriptor: Optional[List[float]] = None

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclasses.dataclass
class Series:
    """Descriptor of a series and the instances that have been loaded."""
    series_instance_uid: str
    series_description: Optional[str] = None
    modality: Optional[str] = None
    series_number: Optional[Number] = None
    series_date: Optional[str] = None
    series_time: Optional[str] = None
    instances: List[SOPInstance] = dataclasses.field(default_factory=list)

    def add_instance(self, instance: SOPInstance) -> None:
        """Append an instance to the series.

        Parameters
        ----------
        instance: dicomweb_metadata.models.SOPInstance
            instance

        Raises
        ------
        ValueError
            when the series already contains an instance with the same
            SOP Instance UID

        """
        uid = instance.sop_instance_uid
        if any(i.sop_instance_uid == uid for i in self.instances):
            raise ValueError(
                f'Series "{self.series_instance_uid}" already contains '
                f'instance "{uid}".'
            )
        self.instances.append(instance)

    def get_instance(self, sop_instance_uid: str) -> Optional[SOPInstance]:
        for instance in self.instances:
            if instance.sop_instance_uid == sop_instance_uid:
                return instance
        return None

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclasses.dataclass
class Study:
    """Descriptor of a study and the series that have been loaded.

    Series are kept in the order in which they were discovered. In lazy
    mode, `series_loader` provides access to the remaining series.

    """
    study_instance_uid: Optional[str] = None
    accession_number: Optional[str] = None
    patient_name: Optional[str] = None
    patient_id: Optional[str] = None
    patient_age: Optional[Number] = None
    patient_size: Optional[Number] = None
    patient_weight: Optional[Number] = None
    study_date: Optional[str] = None
    modalities: Optional[str] = None
    study_description: Optional[str] = None
    image_count: Optional[str] = None
    institution_name: Optional[str] = None
    wado_uri_root: Optional[str] = None
    wado_root: Optional[str] = None
    qido_root: Optional[str] = None
    series_list: List[Series] = dataclasses.field(default_factory=list)
    series_map: Dict[str, Series] = dataclasses.field(
        default_factory=dict, repr=False
    )
    series_loader: Optional['SeriesLoaderHandle'] = dataclasses.field(
        default=None, repr=False, compare=False
    )

    def get_series(self, series_instance_uid: str) -> Optional[Series]:
        return self.series_map.get(series_instance_uid)

    def add_series(self, series: Series) -> None:
        """Add a series to the study.

        Parameters
        ----------
        series: dicomweb_metadata.models.Series
            series

        Raises
        ------
        ValueError
            when the study already contains a series with the same
            Series Instance UID

        """
        uid = series.series_instance_uid
        if uid in self.series_map:
            raise ValueError(
                f'Study "{self.study_instance_uid}" already contains '
                f'series "{uid}".'
            )
        self.series_map[uid] = series
        self.series_list.append(series)

    @property
    def instances(self) -> List[SOPInstance]:
        """List[dicomweb_metadata.models.SOPInstance]: all loaded instances"""
        return [i for s in self.series_list for i in s.instances]

    def to_dict(self) -> Dict[str, Any]:
        """Convert the study into a JSON serializable mapping.

        Returns
        -------
        Dict[str, Any]
            study attributes and series (the series map and the loader
            handle are omitted)

        """
        result = {
            field.name: getattr(self, field.name)
            for field in dataclasses.fields(self)
            if field.name not in ('series_list', 'series_map', 'series_loader')
        }
        result['series_list'] = [s.to_dict() for s in self.series_list]
        return result
