# Common utilities
from ephemurl.common.crypto import KeyAgreement as KeyAgreement
from ephemurl.common.logging_utils import setup_logger as setup_logger
from ephemurl.common.mixins import Configurable as Configurable

__all__ = ["Configurable", "KeyAgreement", "setup_logger"]
