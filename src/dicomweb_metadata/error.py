'''Custom error classes'''
import requests


class DICOMJSONError(ValueError):
    '''Exception class for malformatted DICOM JSON.'''
    pass


class HTTPError(requests.exceptions.HTTPError):
    '''Exception class for HTTP requests with failure status codes.'''
    pass


class EmptyStudyError(ValueError):
    '''Exception class for retrievals that yield no instances.'''
    pass


class SeriesLoaderExhaustedError(RuntimeError):
    '''Exception class for advancing a series loader without pending series.'''
    pass


class PaletteDecodingError(ValueError):
    '''Exception class for bulk data that cannot be decoded into a lookup
    table.'''
    pass
