from .errors import Fig2JsonError, DecodeError, ContainerError
from .kiwi import Schema
from .file import FigmaFile
from .pipeline import Pipeline, TransformConfig
from .convert import Converter, ConversionResult, convert_bytes, convert_file


__version__ = "0.1.0"
