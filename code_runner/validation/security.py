"""
Static security validation for submitted code.

Each language has one ordered rule table. ERROR rules block execution,
WARNING rules are surfaced as advisories. Every rule is evaluated so a
caller can fix all violations in one pass. This is text matching, not
semantic analysis: renaming, string building or reflection get past it.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from ..core.logging import get_logger
from ..execution.models import Language
from .models import IssueSeverity, SecurityRule, ValidationOutcome, Violation

logger = get_logger(__name__)

HOST_MODULES = (
    "os",
    "sys",
    "subprocess",
    "shutil",
    "pathlib",
    "ctypes",
    "importlib",
    "multiprocessing",
    "signal",
    "pty",
)
NETWORK_MODULES = ("socket", "urllib", "http", "requests", "ssl", "ftplib", "smtplib")


def _module_alternation(modules: tuple[str, ...]) -> str:
    return "|".join(re.escape(m) for m in modules)


JAVASCRIPT_RULES = (
    SecurityRule("js.require", r"\brequire\s*\(", "require() is not allowed"),
    SecurityRule(
        "js.es-import",
        r"\bimport\s+(?:[^;\n]*?\bfrom\s*)?['\"]",
        "ES6 imports are not allowed",
    ),
    SecurityRule("js.dynamic-import", r"\bimport\s*\(", "Dynamic imports are not allowed"),
    SecurityRule("js.process", r"\bprocess\s*\.", "Process access is not allowed"),
    SecurityRule("js.buffer", r"\bBuffer\s*\.", "Buffer access is not allowed"),
    SecurityRule("js.global", r"\b(?:global|globalThis)\s*\.", "Global object access is not allowed"),
    SecurityRule("js.eval", r"\beval\s*\(", "eval() is not allowed"),
    SecurityRule(
        "js.function-constructor",
        r"\bnew\s+Function\s*\(",
        "Function constructor is not allowed",
    ),
    SecurityRule(
        "js.constructor-chain",
        r"\.\s*constructor\s*\.\s*constructor\b|\[\s*['\"`]constructor['\"`]\s*\]",
        "Constructor chain access is not allowed",
    ),
    SecurityRule("js.infinite-while", r"\bwhile\s*\(\s*(?:true|1)\s*\)", "Infinite loops are not allowed"),
    SecurityRule("js.infinite-for", r"\bfor\s*\(\s*;\s*;\s*\)", "Infinite loops are not allowed"),
    SecurityRule(
        "js.zero-timeout",
        r"\bsetTimeout\s*\([^,]*,\s*0\s*\)",
        "setTimeout with 0 delay detected",
        IssueSeverity.WARNING,
    ),
    SecurityRule(
        "js.large-array",
        r"\bnew\s+Array\s*\(\s*\d{6,}\s*\)",
        "Large array allocation detected",
        IssueSeverity.WARNING,
    ),
    SecurityRule(
        "js.large-repeat",
        r"\.repeat\s*\(\s*\d{4,}\s*\)",
        "Large string repetition detected",
        IssueSeverity.WARNING,
    ),
    SecurityRule(
        "js.large-loop",
        r"\bfor\s*\([^;\n]*;[^;\n]*<=?\s*\d{6,}",
        "Large iteration count detected",
        IssueSeverity.WARNING,
    ),
)

PYTHON_RULES = (
    SecurityRule(
        "py.host-import",
        rf"\bimport\s+(?:[\w.]+(?:\s+as\s+\w+)?\s*,\s*)*(?P<module>{_module_alternation(HOST_MODULES)})\b",
        "System module imports are not allowed: '{module}'",
    ),
    SecurityRule(
        "py.host-from-import",
        rf"\bfrom\s+(?P<module>{_module_alternation(HOST_MODULES)})(?:\.[\w.]+)?\s+import\b",
        "System module imports are not allowed: '{module}'",
    ),
    SecurityRule(
        "py.network-import",
        rf"\bimport\s+(?:[\w.]+(?:\s+as\s+\w+)?\s*,\s*)*(?P<module>{_module_alternation(NETWORK_MODULES)})\b",
        "Network module imports are not allowed: '{module}'",
    ),
    SecurityRule(
        "py.network-from-import",
        rf"\bfrom\s+(?P<module>{_module_alternation(NETWORK_MODULES)})(?:\.[\w.]+)?\s+import\b",
        "Network module imports are not allowed: '{module}'",
    ),
    SecurityRule("py.open", r"(?<![\w.])open\s*\(", "File operations are not allowed"),
    SecurityRule("py.exec", r"(?<![\w.])exec\s*\(", "exec() is not allowed"),
    SecurityRule("py.eval", r"(?<![\w.])eval\s*\(", "eval() is not allowed"),
    SecurityRule("py.compile", r"(?<![\w.])compile\s*\(", "compile() is not allowed"),
    SecurityRule("py.dunder-import", r"\b__import__\s*\(", "__import__() is not allowed"),
    SecurityRule(
        "py.process-exit",
        r"(?<![\w.])(?:exit|quit)\s*\(|\b(?:sys\.exit|os\._exit|os\.abort)\s*\(",
        "Process exit calls are not allowed",
    ),
    SecurityRule(
        "py.introspection",
        r"\b__(?:subclasses|globals|builtins|code|bases|mro|closure)__\b",
        "Interpreter introspection is not allowed",
    ),
    SecurityRule("py.infinite-while", r"\bwhile\s+(?:True|1)\s*:", "Infinite loops are not allowed"),
    SecurityRule(
        "py.large-range",
        r"\brange\s*\(\s*(?:[^)\n]*,\s*)?\d{6,}",
        "Large range iteration detected",
        IssueSeverity.WARNING,
    ),
    SecurityRule(
        "py.large-list",
        r"\]\s*\*\s*\d{4,}",
        "Large list multiplication detected",
        IssueSeverity.WARNING,
    ),
    SecurityRule(
        "py.large-string",
        r"(['\"])[^'\"\n]*\1\s*\*\s*\d{4,}",
        "Large string multiplication detected",
        IssueSeverity.WARNING,
    ),
)

# Rules whose match is advisory when the request enables networking.
NETWORK_RULE_IDS = frozenset({"py.network-import", "py.network-from-import"})

COMMENT_PREFIXES = MappingProxyType({Language.JAVASCRIPT: "//", Language.PYTHON: "#"})


@dataclass(frozen=True, slots=True)
class _CompiledRule:
    rule: SecurityRule
    regex: re.Pattern[str]


def _compile(rules: tuple[SecurityRule, ...]) -> tuple[_CompiledRule, ...]:
    return tuple(_CompiledRule(rule, re.compile(rule.pattern)) for rule in rules)


RULE_SETS: Mapping[Language, tuple[_CompiledRule, ...]] = MappingProxyType(
    {
        Language.JAVASCRIPT: _compile(JAVASCRIPT_RULES),
        Language.PYTHON: _compile(PYTHON_RULES),
    }
)


class SecurityValidator:
    """
    Stateless, per-language static validator.

    Safe to share between concurrent requests: the rule tables are
    compiled once at import and never modified.
    """

    def validate(
        self,
        language: Language,
        code: str,
        *,
        networking_enabled: bool = False,
    ) -> ValidationOutcome:
        """
        Check code against the language's rule table.

        Args:
            language: Language the code is written in
            code: Source text
            networking_enabled: Downgrade network-module imports to advisories

        Returns:
            ValidationOutcome listing every blocking violation and advisory
        """
        language = Language.parse(language)
        lines = code.split("\n")
        comment_prefix = COMMENT_PREFIXES[language]

        violations: list[Violation] = []
        advisories: list[Violation] = []
        seen: set[tuple[str, str]] = set()

        for compiled in RULE_SETS[language]:
            rule = compiled.rule
            blocking = rule.severity is IssueSeverity.ERROR
            if blocking and networking_enabled and rule.rule_id in NETWORK_RULE_IDS:
                blocking = False

            for match in compiled.regex.finditer(code):
                line_num = code.count("\n", 0, match.start()) + 1
                if lines[line_num - 1].lstrip().startswith(comment_prefix):
                    continue

                message = rule.message.format(**match.groupdict())
                if rule.rule_id in NETWORK_RULE_IDS and not blocking:
                    message = f"Network module '{match.group('module')}' imported with networking enabled"

                key = (rule.rule_id, message)
                if key in seen:
                    continue
                seen.add(key)

                issue = Violation(rule_id=rule.rule_id, message=message, line=line_num)
                (violations if blocking else advisories).append(issue)

        if violations:
            logger.debug(
                f"Rejected {language.value} code: {', '.join(v.rule_id for v in violations)}"
            )
        return ValidationOutcome(violations=tuple(violations), advisories=tuple(advisories))

    def rules_for(self, language: Language) -> tuple[SecurityRule, ...]:
        """Return the rule table for a language in evaluation order."""
        return tuple(compiled.rule for compiled in RULE_SETS[Language.parse(language)])
