import pytest

from dicomweb_metadata.error import DICOMJSONError
from dicomweb_metadata.models import RadiopharmaceuticalInfo
from dicomweb_metadata.normalize import (
    InstanceNormalizer,
    create_study,
    get_frame_increment_pointer,
    get_radiopharmaceutical_info,
    get_source_image_instance_uid,
)


def _serve_palette(transport):
    base_url = 'https://pacs.example.com/rs'
    transport.bulkdata[f'{base_url}/bulk/red'] = [bytes([0, 10, 20, 30])]
    transport.bulkdata[f'{base_url}/bulk/green'] = [bytes([1, 11, 21, 31])]
    transport.bulkdata[f'{base_url}/bulk/blue'] = [bytes([2, 12, 22, 32])]


def test_create_study(server, make_instance, study_instance_uid):
    dataset = make_instance(
        '1.2.3.1', '1.2.3.1.1',
        **{
            '00101010': {'vr': 'AS', 'Value': ['42']},
            '00101030': {'vr': 'DS', 'Value': ['71.5']},
            '00080061': {'vr': 'CS', 'Value': ['CT', 'SEG']},
            '00201208': {'vr': 'IS', 'Value': [120]},
            '00080080': {'vr': 'LO', 'Value': ['General Hospital']},
        }
    )
    study = create_study(server, dataset)
    assert study.study_instance_uid == study_instance_uid
    assert study.patient_name == 'Doe^Jane'
    assert study.patient_id == 'PAT-001'
    assert study.accession_number == 'ACC-42'
    assert study.patient_age == 42
    assert study.patient_weight == 71.5
    assert study.patient_size is None
    assert study.study_date == '20240131'
    assert study.modalities == 'CT\\SEG'
    assert study.study_description == 'Chest'
    assert study.image_count == '120'
    assert study.institution_name == 'General Hospital'
    assert study.wado_root == 'https://pacs.example.com/rs'
    assert study.qido_root == 'https://pacs.example.com/rs'
    assert study.wado_uri_root == 'https://pacs.example.com/wado'
    assert study.series_list == []


def test_get_source_image_instance_uid(make_instance):
    item = {'00081155': {'vr': 'UI', 'Value': ['1.2.3.9']}}
    dataset = make_instance(
        '1.2.3.1', '1.2.3.1.1',
        **{'00082112': {'vr': 'SQ', 'Value': [item]}}
    )
    assert get_source_image_instance_uid(dataset) == '1.2.3.9'
    assert get_source_image_instance_uid(
        make_instance('1.2.3.1', '1.2.3.1.1')
    ) is None


@pytest.mark.parametrize(
    'tag,expected_name',
    [
        ('00181065', 'frame_time_vector'),
        ('00181063', 'frame_time'),
        ('00540080', None),
    ]
)
def test_get_frame_increment_pointer(make_instance, tag, expected_name):
    dataset = make_instance(
        '1.2.3.1', '1.2.3.1.1',
        **{'00280009': {'vr': 'AT', 'Value': [tag]}}
    )
    assert get_frame_increment_pointer(dataset) == expected_name


def test_get_radiopharmaceutical_info(make_instance):
    item = {
        '00181072': {'vr': 'TM', 'Value': ['101500']},
        '00181074': {'vr': 'DS', 'Value': ['370000000']},
        '00181075': {'vr': 'DS', 'Value': ['6586.2']},
    }
    dataset = make_instance(
        '1.2.3.1', '1.2.3.1.1', modality='PT',
        **{'00540016': {'vr': 'SQ', 'Value': [item]}}
    )
    info = get_radiopharmaceutical_info(dataset)
    assert info == RadiopharmaceuticalInfo(
        radiopharmaceutical_start_time='101500',
        radionuclide_total_dose=370000000,
        radionuclide_half_life=6586.2,
    )


def test_get_radiopharmaceutical_info_other_modality(make_instance):
    item = {'00181072': {'vr': 'TM', 'Value': ['101500']}}
    dataset = make_instance(
        '1.2.3.1', '1.2.3.1.1', modality='CT',
        **{'00540016': {'vr': 'SQ', 'Value': [item]}}
    )
    assert get_radiopharmaceutical_info(dataset) is None


def test_normalize(server, normalizer, make_instance, study_instance_uid):
    dataset = make_instance('1.2.3.1', '1.2.3.1.1', instance_number=3)
    study = create_study(server, dataset)
    instance = normalizer.normalize(study, dataset)
    assert instance.sop_instance_uid == '1.2.3.1.1'
    assert instance.sop_class_uid == '1.2.840.10008.5.1.4.1.1.2'
    assert instance.modality == 'CT'
    assert instance.instance_number == 3
    assert instance.rows == 512
    assert instance.columns == 512
    assert instance.photometric_interpretation == 'MONOCHROME2'
    assert instance.frame_time_vector == []
    assert instance.radiopharmaceutical_info is None
    assert instance.image_rendering == 'wadors'
    assert instance.thumbnail_rendering == 'wadors'
    assert instance.wado_root == 'https://pacs.example.com/rs'
    base_uri = (
        f'https://pacs.example.com/rs/studies/{study_instance_uid}'
        '/series/1.2.3.1/instances/1.2.3.1.1'
    )
    assert instance.base_wado_rs_uri == base_uri
    assert instance.wado_rs_uri == f'{base_uri}/frames/1'
    assert instance.wado_uri == (
        'https://pacs.example.com/wado?requestType=WADO'
        f'&studyUID={study_instance_uid}'
        '&seriesUID=1.2.3.1&objectUID=1.2.3.1.1'
        '&contentType=application%2Fdicom&transferSyntax=%2A'
    )
    assert study.get_series('1.2.3.1').instances == [instance]


def test_normalize_creates_series(server, normalizer, make_instance):
    dataset = make_instance(
        '1.2.3.1', '1.2.3.1.1', series_number=4,
        **{
            '0008103E': {'vr': 'LO', 'Value': ['Axial']},
            '00080021': {'vr': 'DA', 'Value': ['20240131']},
            '00080031': {'vr': 'TM', 'Value': ['120000']},
        }
    )
    study = create_study(server, dataset)
    normalizer.normalize(study, dataset)
    series = study.get_series('1.2.3.1')
    assert series.series_description == 'Axial'
    assert series.modality == 'CT'
    assert series.series_number == 4
    assert series.series_date == '20240131'
    assert series.series_time == '120000'


def test_normalize_multiframe(server, normalizer, make_instance):
    dataset = make_instance(
        '1.2.3.1', '1.2.3.1.1', modality='US',
        **{
            '00280008': {'vr': 'IS', 'Value': [3]},
            '00280009': {'vr': 'AT', 'Value': ['00181065']},
            '00181065': {'vr': 'DS', 'Value': [0, 33.3, 33.4]},
        }
    )
    study = create_study(server, dataset)
    instance = normalizer.normalize(study, dataset)
    assert instance.number_of_frames == 3
    assert instance.frame_increment_pointer == 'frame_time_vector'
    assert instance.frame_time_vector == [0.0, 33.3, 33.4]


def test_normalize_palette_color(server, normalizer, transport,
                                 make_instance, make_palette_elements):
    _serve_palette(transport)
    dataset = make_instance(
        '1.2.3.1', '1.2.3.1.1', modality='PT',
        **make_palette_elements(uid='1.2.3.99')
    )
    study = create_study(server, dataset)
    instance = normalizer.normalize(study, dataset)
    assert instance.palette_color_lookup_table_uid == '1.2.3.99'
    assert instance.red_palette_color_lookup_table_data == [0, 10, 20, 30]
    assert instance.green_palette_color_lookup_table_data == [1, 11, 21, 31]
    assert instance.blue_palette_color_lookup_table_data == [2, 12, 22, 32]
    assert instance.red_palette_color_lookup_table_descriptor == [4, 0, 8]
    assert instance.green_palette_color_lookup_table_descriptor == [4, 0, 8]
    assert instance.blue_palette_color_lookup_table_descriptor == [4, 0, 8]


def test_normalize_palette_color_without_uid(server, normalizer, transport,
                                             make_instance,
                                             make_palette_elements):
    _serve_palette(transport)
    dataset = make_instance(
        '1.2.3.1', '1.2.3.1.1', **make_palette_elements()
    )
    study = create_study(server, dataset)
    instance = normalizer.normalize(study, dataset)
    assert instance.palette_color_lookup_table_uid is None
    assert instance.red_palette_color_lookup_table_data == [0, 10, 20, 30]


def test_normalize_monochrome_fetches_no_bulkdata(server, normalizer,
                                                  transport, make_instance):
    dataset = make_instance('1.2.3.1', '1.2.3.1.1')
    study = create_study(server, dataset)
    instance = normalizer.normalize(study, dataset)
    assert instance.red_palette_color_lookup_table_data is None
    assert transport.calls == []


def test_normalize_all(server, normalizer, make_instance):
    datasets = [
        make_instance('1.2.3.2', '1.2.3.2.1', series_number=2),
        make_instance('1.2.3.1', '1.2.3.1.1', series_number=1),
        make_instance('1.2.3.2', '1.2.3.2.2', series_number=2),
        make_instance('1.2.3.1', '1.2.3.1.2', series_number=1),
        make_instance('1.2.3.2', '1.2.3.2.3', series_number=2),
    ]
    study = create_study(server, datasets[0])
    instances = normalizer.normalize_all(study, datasets)
    assert [i.sop_instance_uid for i in instances] == [
        '1.2.3.2.1', '1.2.3.1.1', '1.2.3.2.2', '1.2.3.1.2', '1.2.3.2.3'
    ]
    assert [s.series_instance_uid for s in study.series_list] == [
        '1.2.3.2', '1.2.3.1'
    ]
    assert len(study.get_series('1.2.3.2').instances) == 3
    assert len(study.get_series('1.2.3.1').instances) == 2
    assert len(study.instances) == 5


def test_normalize_all_shares_palette(server, normalizer, transport,
                                      make_instance, make_palette_elements):
    _serve_palette(transport)
    datasets = [
        make_instance(
            '1.2.3.1', f'1.2.3.1.{i}', **make_palette_elements(uid='1.2.3.99')
        )
        for i in range(1, 11)
    ]
    study = create_study(server, datasets[0])
    normalizer.normalize_all(study, datasets)
    assert transport.count('bulkdata') == 3
    assert len(study.instances) == 10


def test_normalize_all_duplicate_instance(server, normalizer, make_instance):
    datasets = [
        make_instance('1.2.3.1', '1.2.3.1.1'),
        make_instance('1.2.3.1', '1.2.3.1.1'),
    ]
    study = create_study(server, datasets[0])
    instances = normalizer.normalize_all(study, datasets)
    assert len(study.get_series('1.2.3.1').instances) == 1
    assert instances[0] is instances[1]


def test_normalize_all_into_existing_study(server, normalizer,
                                           make_instance):
    first = [make_instance('1.2.3.1', '1.2.3.1.1')]
    second = [make_instance('1.2.3.2', '1.2.3.2.1', series_number=2)]
    study = create_study(server, first[0])
    normalizer.normalize_all(study, first)
    normalizer.normalize_all(study, second)
    assert [s.series_instance_uid for s in study.series_list] == [
        '1.2.3.1', '1.2.3.2'
    ]


def test_normalize_all_error(server, normalizer, make_instance):
    datasets = [
        make_instance('1.2.3.1', '1.2.3.1.1'),
        make_instance(
            '1.2.3.1', '1.2.3.1.2', **{'00280010': {'vr': 'US', 'Value': 512}}
        ),
    ]
    study = create_study(server, datasets[0])
    with pytest.raises(DICOMJSONError):
        normalizer.normalize_all(study, datasets)
    assert study.series_list == []
    assert study.series_map == {}


def test_normalize_all_error_keeps_loaded_series(server, normalizer,
                                                 make_instance):
    first = [make_instance('1.2.3.1', '1.2.3.1.1')]
    second = [
        make_instance('1.2.3.2', '1.2.3.2.1', series_number=2),
        make_instance(
            '1.2.3.2', '1.2.3.2.2', series_number=2,
            **{'00280010': {'vr': 'US', 'Value': 512}}
        ),
    ]
    study = create_study(server, first[0])
    normalizer.normalize_all(study, first)
    with pytest.raises(DICOMJSONError):
        normalizer.normalize_all(study, second)
    assert [s.series_instance_uid for s in study.series_list] == ['1.2.3.1']
    assert study.get_series('1.2.3.2') is None
    assert len(study.instances) == 1


def test_normalizer_max_workers(server, fetcher):
    with pytest.raises(ValueError):
        InstanceNormalizer(server, fetcher, max_workers=0)
