"""
Signature and throttling-parameter rules of the player JavaScript.

The player script carries two transformation functions: one turns the
``s`` value of a signatureCipher into a working signature, the other turns
the ``n`` throttling parameter of a streaming url into its deobfuscated
form. PlayerRuleExtractor locates both by regular expression and evaluates
them with yt-dlp's JavaScript interpreter.
"""

import logging
import re
import threading
from collections.abc import Callable
from typing import Protocol

from yt_dlp.jsinterp import JSInterpreter

logger = logging.getLogger(__name__)


class SignatureRuleError(Exception):
    """Raised when a rule cannot be located in, or evaluated from, the player script."""


class RuleExtractor(Protocol):
    def extract_sig(self, value: str) -> str | None: ...

    def extract_nsig(self, value: str) -> str | None: ...


# Examples where `sig` is the function name:
#   ;c&&(c=sig(decodeURIComponent(c)),a.set(b,encodeURIComponent(c)));return a};
#   sig=function(a){a=a.split(""); ... ;return a.join("")};
_SIG_FUNCTION_PATTERNS = (
    r"\b(?P<var>[a-zA-Z0-9_$]+)&&\((?P=var)=(?P<sig>[a-zA-Z0-9_$]{2,})\(decodeURIComponent\((?P=var)\)\)",
    r'(?P<sig>[a-zA-Z0-9_$]+)\s*=\s*function\(\s*(?P<arg>[a-zA-Z0-9_$]+)\s*\)\s*{\s*(?P=arg)\s*=\s*(?P=arg)\.split\(\s*""\s*\)\s*;\s*[^}]+;\s*return\s+(?P=arg)\.join\(\s*""\s*\)',
    r'(?:\b|[^a-zA-Z0-9_$])(?P<sig>[a-zA-Z0-9_$]{2,})\s*=\s*function\(\s*a\s*\)\s*{\s*a\s*=\s*a\.split\(\s*""\s*\)(?:;[a-zA-Z0-9_$]{2}\.[a-zA-Z0-9_$]{2}\(a,\d+\))?',
    r"\b[cs]\s*&&\s*[adf]\.set\([^,]+\s*,\s*encodeURIComponent\s*\(\s*(?P<sig>[a-zA-Z0-9$]+)\(",
    r"\b[a-zA-Z0-9]+\s*&&\s*[a-zA-Z0-9]+\.set\([^,]+\s*,\s*encodeURIComponent\s*\(\s*(?P<sig>[a-zA-Z0-9$]+)\(",
    r"\bm=(?P<sig>[a-zA-Z0-9$]{2,})\(decodeURIComponent\(h\.s\)\)",
)

# Examples (nfunc, narray, idx are placeholders):
#   .get("n"))&&(b=nfunc(b)
#   .get("n"))&&(b=narray[idx](b)
#   b=String.fromCharCode(110),c=a.get(b))&&c=narray[idx](c)
#   a.D&&(b="nn"[+a.D],c=a.get(b))&&(c=narray[idx](c),a.set(b,c),narray.length||nfunc("")
_N_FUNCTION_PATTERN = re.compile(
    r"""(?x)
    (?:
        \.get\("n"\)\)&&\(b=|
        (?:
            b=String\.fromCharCode\(110\)|
            (?P<str_idx>[a-zA-Z0-9_$.]+)&&\(b="nn"\[\+(?P=str_idx)\]
        )
        (?:
            ,[a-zA-Z0-9_$]+\(a\))?,c=a\.
            (?:
                get\(b\)|
                [a-zA-Z0-9_$]+\[b\]\|\|null
            )\)&&\(c=|
        \b(?P<var>[a-zA-Z0-9_$]+)=
    )(?P<nfunc>[a-zA-Z0-9_$]+)(?:\[(?P<idx>\d+)\])?\([a-zA-Z]\)
    (?(var),[a-zA-Z0-9_$]+\.set\((?:"n+"|[a-zA-Z0-9_$]+)\,(?P=var)\))"""
)

# Fallback: the n function returns an "enhanced_except" marker on failure.
_N_FUNCTION_FALLBACK_PATTERN = re.compile(
    r"""(?xs)
    ;\s*(?P<name>[a-zA-Z0-9_$]+)\s*=\s*function\([a-zA-Z0-9_$]+\)
    \s*\{(?:(?!};).)+?return\s*(?P<q>["'])[\w-]+_w8_(?P=q)\s*\+\s*[a-zA-Z0-9_$]+"""
)

# 'use strict';var XY="...".split(";")
_GLOBAL_VAR_PATTERN = re.compile(
    r"""(?x)
    \'use\s+strict\';\s*
    (?P<code>
        var\s+(?P<name>[a-zA-Z0-9_$]+)\s*=\s*
        (?P<value>"(?:[^"\\]|\\.)+"\.split\("[^"]+"\))
    )[;,]"""
)


def find_sig_function_name(script: str) -> str:
    for pattern in _SIG_FUNCTION_PATTERNS:
        match = re.search(pattern, script)
        if match:
            return match.group("sig")
    raise SignatureRuleError("Could not find signature function in player JS")


def find_n_function_name(script: str) -> str:
    match = _N_FUNCTION_PATTERN.search(script)
    if not match:
        logger.debug("Falling back to generic n function search")
        match = _N_FUNCTION_FALLBACK_PATTERN.search(script)
        if not match:
            raise SignatureRuleError("Could not find n function in player JS")
        return match.group("name")

    func_name, idx = match.group("nfunc"), match.group("idx")
    if not idx:
        return func_name

    # The call goes through an array: var narray=[nfunc];
    arr_match = re.search(rf"var\s+{re.escape(func_name)}\s*=\s*\[(.+?)\]\s*[,;]", script)
    if not arr_match:
        raise SignatureRuleError(f"Could not find n function list {func_name!r}")
    names = [name.strip() for name in arr_match.group(1).split(",")]
    try:
        return names[int(idx)]
    except IndexError:
        raise SignatureRuleError(f"n function list {func_name!r} has no index {idx}")


def remove_typeof_guard(code: str, var_name: str, arg_name: str) -> str:
    """Drop the n function's early-return ``typeof`` guard; the interpreter has no typeof."""
    return re.sub(
        rf";\s*if\s*\(\s*typeof\s+[a-zA-Z0-9_$]+\s*===?\s*"
        rf"(?:([\"'])undefined\1|{re.escape(var_name)}\[\d+\])\s*\)\s*return\s+{re.escape(arg_name)};",
        ";",
        code,
    )


class PlayerRuleExtractor:
    """
    Evaluates the signature and n rules of one player script.

    Functions are located and compiled on first use and kept for the
    lifetime of the extractor. With *use_ejs* the script's global string
    array is resolved and made visible to both functions.
    """

    def __init__(self, script: str, use_ejs: bool = False):
        if not script:
            raise ValueError("Player script is empty")
        self._script = script
        self._use_ejs = use_ejs
        self._interpreter = JSInterpreter(script)
        self._lock = threading.Lock()
        self._sig_function: Callable[[str], str] | None = None
        self._n_function: Callable[[str], str] | None = None

    # ------------------------------------------------------------------
    # Public rules
    # ------------------------------------------------------------------

    def extract_sig(self, value: str) -> str | None:
        func = self._sig_function or self._load("_sig_function", self._build_sig_function)
        return self._call(func, value, "signature")

    def extract_nsig(self, value: str) -> str | None:
        func = self._n_function or self._load("_n_function", self._build_n_function)
        result = self._call(func, value, "n")
        if result.startswith("enhanced_except_") or result.endswith(value):
            raise SignatureRuleError("n function returned an exception")
        return result

    # ------------------------------------------------------------------
    # Function construction
    # ------------------------------------------------------------------

    def _load(self, attr: str, build: Callable[[], Callable[[str], str]]):
        with self._lock:
            func = getattr(self, attr)
            if func is None:
                func = build()
                setattr(self, attr, func)
        return func

    def _global_var(self) -> tuple[str | None, str | None, str | None]:
        if not self._use_ejs:
            return None, None, None
        match = _GLOBAL_VAR_PATTERN.search(self._script)
        if not match:
            logger.debug("No global array variable found in player JS")
            return None, None, None
        return match.group("code"), match.group("name"), match.group("value")

    def _build_sig_function(self) -> Callable[[str], str]:
        func_name = find_sig_function_name(self._script)
        logger.debug("Signature function: %s", func_name)

        global_stack = {}
        _, var_name, var_value = self._global_var()
        try:
            if var_name:
                global_stack[var_name] = self._interpreter.interpret_expression(
                    var_value, {}, allow_recursion=100
                )
            func = self._interpreter.extract_function(func_name, global_stack)
        except JSInterpreter.Exception as e:
            raise SignatureRuleError(f"Could not extract signature function: {e}")
        return lambda s: func([s])

    def _build_n_function(self) -> Callable[[str], str]:
        func_name = find_n_function_name(self._script)
        logger.debug("n function: %s", func_name)

        try:
            arg_names, code = self._interpreter.extract_function_code(func_name)
        except JSInterpreter.Exception as e:
            raise SignatureRuleError(f"Could not extract n function: {e}")

        global_code, var_name, _ = self._global_var()
        if global_code:
            code = remove_typeof_guard(f"{global_code}, {code}", var_name, arg_names[0])

        func = self._interpreter.extract_function_from_code(arg_names, code)
        return lambda s: func([s])

    @staticmethod
    def _call(func: Callable[[str], str], value: str, rule: str) -> str:
        try:
            result = func(value)
        except SignatureRuleError:
            raise
        except Exception as e:
            raise SignatureRuleError(f"{rule} function failed: {e}")
        if not isinstance(result, str):
            raise SignatureRuleError(f"{rule} function returned {type(result).__name__}")
        return result
