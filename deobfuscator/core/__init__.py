"""Core: fetching, player script state, signature rules and url deobfuscation."""

from .nsig_cache import ThrottlingParameterCache
from .signature_rules import PlayerRuleExtractor, RuleExtractor, SignatureRuleError
from .streaming import StreamingUrlDeobfuscator, get_deobfuscator

__all__ = [
    "PlayerRuleExtractor",
    "RuleExtractor",
    "SignatureRuleError",
    "StreamingUrlDeobfuscator",
    "ThrottlingParameterCache",
    "get_deobfuscator",
]
