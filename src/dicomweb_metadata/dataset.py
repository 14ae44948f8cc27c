"""Typed access to attributes of data sets in DICOM JSON format.

A data set is a mapping of DICOM *Tags* (8-digit upper case hexadecimal
strings, e.g. ``"0020000D"``) to data elements, each a mapping with a
``"vr"`` and optionally a ``"Value"`` list or a ``"BulkDataURI"``
(see `DICOM JSON Model <http://dicom.nema.org/medical/dicom/current/output/chtml/part18/chapter_F.html>`_).

"""  # noqa: E501
import logging
from typing import Any, Dict, List, Optional, Union

import pydicom

from dicomweb_metadata.error import DICOMJSONError


logger = logging.getLogger(__name__)


#: Data set in DICOM JSON format
Dataset = Dict[str, Dict[str, Any]]

#: Data element of a data set in DICOM JSON format
DataElement = Dict[str, Any]

Number = Union[int, float]


def _get_values(element: Optional[DataElement]) -> List[Any]:
    """Get the values of a data element.

    Parameters
    ----------
    element: Union[Dict[str, Any], None]
        data element

    Returns
    -------
    List[Any]
        values of the element (empty in case the element or its values are
        absent)

    Raises
    ------
    dicomweb_metadata.error.DICOMJSONError
        when `element` is not a mapping or its values are not a list

    """
    if element is None:
        return []
    if not isinstance(element, dict):
        raise DICOMJSONError(
            f'Data element must be a mapping, got "{type(element).__name__}".'
        )
    values = element.get('Value')
    if values is None:
        return []
    if not isinstance(values, list):
        raise DICOMJSONError(
            'Value of data element must be a list, '
            f'got "{type(values).__name__}".'
        )
    return values


def get_element(dataset: Dataset, tag: str) -> Optional[DataElement]:
    """Get a data element of a data set.

    Parameters
    ----------
    dataset: Dict[str, Dict[str, Any]]
        data set
    tag: str
        attribute tag (e.g. ``"00080018"``)

    Returns
    -------
    Union[Dict[str, Any], None]
        data element or ``None`` in case the data set doesn't contain it

    Raises
    ------
    dicomweb_metadata.error.DICOMJSONError
        when `dataset` is not a mapping

    """
    if not isinstance(dataset, dict):
        raise DICOMJSONError(
            f'Data set must be a mapping, got "{type(dataset).__name__}".'
        )
    return dataset.get(tag)


def get_value(element: Optional[DataElement], default: Any = None) -> Any:
    """Get the first value of a data element."""
    values = _get_values(element)
    if not values:
        return default
    return values[0]


def get_string(
    element: Optional[DataElement],
    default: Optional[str] = None
) -> Optional[str]:
    """Get the value of a data element as a string.

    Multiple values are joined using a backslash, the value delimiter of
    DICOM multi-valued attributes.

    Parameters
    ----------
    element: Union[Dict[str, Any], None]
        data element
    default: Union[str, None], optional
        value that is returned when the element or its values are absent

    Returns
    -------
    Union[str, None]
        value

    """
    values = _get_values(element)
    if not values:
        return default
    if len(values) > 1:
        return '\\'.join(str(v) for v in values)
    value = values[0]
    if value is None:
        return default
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def get_number(
    element: Optional[DataElement],
    default: Optional[Number] = None
) -> Optional[Number]:
    """Get the first value of a data element as a number.

    Parameters
    ----------
    element: Union[Dict[str, Any], None]
        data element
    default: Union[int, float, None], optional
        value that is returned when the element or its values are absent or
        when the value cannot be interpreted as a number

    Returns
    -------
    Union[int, float, None]
        value (``int`` if the value is integral)

    """
    value = get_value(element)
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.debug(f'value "{value}" is not a number')
        return default
    if number.is_integer():
        return int(number)
    return number


def get_name(
    element: Optional[DataElement],
    default: Optional[str] = None
) -> Optional[str]:
    """Get the first value of a Person Name data element.

    Parameters
    ----------
    element: Union[Dict[str, Any], None]
        data element with value representation ``"PN"``
    default: Union[str, None], optional
        value that is returned when the element or its values are absent

    Returns
    -------
    Union[str, None]
        alphabetic component group of the name

    """
    value = get_value(element)
    if value is None:
        return default
    if isinstance(value, dict):
        return value.get('Alphabetic', default)
    return str(value)


def get_bulkdata_uri(element: Optional[DataElement]) -> Optional[str]:
    """Get the location of the bulk data of a data element."""
    if element is None:
        return None
    if not isinstance(element, dict):
        raise DICOMJSONError(
            f'Data element must be a mapping, got "{type(element).__name__}".'
        )
    return element.get('BulkDataURI')


def get_sequence_items(element: Optional[DataElement]) -> List[Dataset]:
    """Get the items of a Sequence of Items data element.

    Parameters
    ----------
    element: Union[Dict[str, Any], None]
        data element with value representation ``"SQ"``

    Returns
    -------
    List[Dict[str, Dict[str, Any]]]
        data sets of the sequence items

    Raises
    ------
    dicomweb_metadata.error.DICOMJSONError
        when an item is not a mapping

    """
    items = _get_values(element)
    for item in items:
        if not isinstance(item, dict):
            raise DICOMJSONError('Items of a sequence must be data sets.')
    return items


def parse_float_array(value: Optional[str]) -> List[float]:
    """Parse a backslash-delimited string of numbers.

    Parameters
    ----------
    value: Union[str, None]
        multi-valued string (e.g. ``"256\\0\\16"``)

    Returns
    -------
    List[float]
        numbers (``nan`` for components that are not numbers)

    """
    if not value:
        return []
    result = []
    for item in value.split('\\'):
        try:
            result.append(float(item))
        except ValueError:
            result.append(float('nan'))
    return result


def lookup_tag(keyword: str) -> str:
    """Look up the tag of a DICOM attribute.

    Parameters
    ----------
    keyword: str
        Attribute keyword (e.g. ``"SOPInstanceUID"``)

    Returns
    -------
    str
        Attribute tag as HEX string (e.g. ``"00080018"``)

    Raises
    ------
    KeyError
        when `keyword` is not a known DICOM keyword

    """
    tag = pydicom.datadict.tag_for_keyword(keyword)
    if tag is None:
        raise KeyError(f'Unknown DICOM keyword "{keyword}".')
    tag = pydicom.tag.Tag(tag)
    return '{0:04x}{1:04x}'.format(tag.group, tag.element).upper()
