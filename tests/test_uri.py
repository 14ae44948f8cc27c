import pytest

from dicomweb_metadata.uri import (
    assert_uid_format,
    build_instance_frame_wado_rs_uri,
    build_instance_wado_rs_uri,
    build_instance_wado_uri,
    build_query_string,
    rewrite_bulkdata_uri,
)


def test_build_query_string():
    assert build_query_string() == ''
    assert build_query_string({}) == ''
    assert build_query_string({'limit': 2}) == '?limit=2'
    assert build_query_string(
        {'includefield': ['Modality', 'SeriesNumber']}
    ) == '?includefield=Modality&includefield=SeriesNumber'
    assert build_query_string({'q': 'a b/c'}) == '?q=a+b%2Fc'


@pytest.mark.parametrize('uid', ['1.2.3', '1', '1.2.840.10008.1.2.1'])
def test_assert_uid_format(uid):
    assert_uid_format(uid)


@pytest.mark.parametrize('uid', ['1.2.x', '', '1.2 3', 'abc'])
def test_assert_uid_format_invalid(uid):
    with pytest.raises(ValueError):
        assert_uid_format(uid)


def test_assert_uid_format_no_string():
    with pytest.raises(TypeError):
        assert_uid_format(1.2)


def test_build_instance_wado_uri():
    uri = build_instance_wado_uri(
        'https://pacs.example.com/wado', '1.2.3', '1.2.4', '1.2.5'
    )
    assert uri == (
        'https://pacs.example.com/wado?requestType=WADO'
        '&studyUID=1.2.3&seriesUID=1.2.4&objectUID=1.2.5'
        '&contentType=application%2Fdicom&transferSyntax=%2A'
    )


def test_build_instance_wado_rs_uri():
    uri = build_instance_wado_rs_uri(
        'https://pacs.example.com/rs', '1.2.3', '1.2.4', '1.2.5'
    )
    assert uri == (
        'https://pacs.example.com/rs'
        '/studies/1.2.3/series/1.2.4/instances/1.2.5'
    )


def test_build_instance_frame_wado_rs_uri():
    base_uri = (
        'https://pacs.example.com/rs'
        '/studies/1.2.3/series/1.2.4/instances/1.2.5'
    )
    assert build_instance_frame_wado_rs_uri(
        'https://pacs.example.com/rs', '1.2.3', '1.2.4', '1.2.5'
    ) == f'{base_uri}/frames/1'
    assert build_instance_frame_wado_rs_uri(
        'https://pacs.example.com/rs', '1.2.3', '1.2.4', '1.2.5', 7
    ) == f'{base_uri}/frames/7'


def test_build_instance_frame_wado_rs_uri_invalid_frame_number():
    with pytest.raises(ValueError):
        build_instance_frame_wado_rs_uri(
            'https://pacs.example.com/rs', '1.2.3', '1.2.4', '1.2.5', 0
        )


@pytest.mark.parametrize(
    'uri,wado_root,expected_uri',
    [
        (
            'http://pacs.example.com/rs/bulk/1',
            'https://pacs.example.com/rs',
            'https://pacs.example.com/rs/bulk/1',
        ),
        (
            'http://pacs.example.com/rs/bulk/1',
            'http://pacs.example.com/rs',
            'http://pacs.example.com/rs/bulk/1',
        ),
        (
            'https://pacs.example.com/rs/bulk/1',
            'https://pacs.example.com/rs',
            'https://pacs.example.com/rs/bulk/1',
        ),
    ]
)
def test_rewrite_bulkdata_uri(uri, wado_root, expected_uri):
    assert rewrite_bulkdata_uri(uri, wado_root) == expected_uri
