"""anchorlight: DNSSEC response validation with a chain-of-trust walk"""

from .dnssec.errors import DNSSECError, ErrorKind
from .dnssec.resolver import StubResolver
from .dnssec.trust_anchors import TrustAnchor
from .dnssec.validator import Validator

__all__ = ["DNSSECError", "ErrorKind", "StubResolver", "TrustAnchor", "Validator"]
