"""Rule-based permission checks for tool execution."""

import fnmatch
import json
import shlex
from pathlib import Path
from typing import Awaitable, Callable, Literal

from pydantic import BaseModel, Field, ValidationError

from tenx.config import DEFAULT_SETTINGS_PATH
from tenx.logging import get_logger

log = get_logger(__name__)

PermissionAction = Literal["allow", "ask", "deny"]
PermissionPromptFn = Callable[[str, str, str], Awaitable[bool]]

# Tools whose user settings are merged onto the built-in defaults.
CONFIGURABLE_TOOLS: tuple[str, ...] = ("read", "write", "edit", "glob", "grep", "bash")


class PermissionRule(BaseModel):
    """Glob-style pattern mapped to an action."""

    pattern: str
    action: PermissionAction


class ToolPermissions(BaseModel):
    """Ordered rules for one tool; the first matching rule wins."""

    default: PermissionAction = "ask"
    rules: list[PermissionRule] = Field(default_factory=list)


class PermissionCheckResult(BaseModel):
    """Outcome of evaluating a tool invocation against its rules."""

    action: PermissionAction
    allowed: bool
    matched_rule: PermissionRule | None = None
    reason: str = ""


PermissionConfig = dict[str, ToolPermissions]


def _rules(action: PermissionAction, *patterns: str) -> list[PermissionRule]:
    return [PermissionRule(pattern=pattern, action=action) for pattern in patterns]


# Destructive idioms must precede every broad allow wildcard.
_BASH_DENY = _rules(
    "deny",
    "sudo *",
    "su *",
    "rm -rf /*",
    "rm -rf ~/*",
    "rm -rf $HOME/*",
    "rm -rf /",
    "rm -rf ~",
    "chmod 777 *",
    "chmod -R 777 *",
    ": > /*",
    "> /*",
    "dd if=*",
    "mkfs*",
    "shutdown*",
    "reboot*",
    "halt*",
    "poweroff*",
    ":(){:|:&};:",
    ":(){ :|:& };:",
    "wget * | bash*",
    "curl * | bash*",
    "wget * | sh*",
    "curl * | sh*",
)

_BASH_ALLOW = _rules(
    "allow",
    "git status",
    "git diff*",
    "git log*",
    "git branch*",
    "git show*",
    "npm test*",
    "npm run *",
    "npm install*",
    "bun *",
    "bunx *",
    "pnpm *",
    "yarn *",
    "ls *",
    "ls",
    "cat *",
    "head *",
    "tail *",
    "wc *",
    "pwd",
    "which *",
    "echo *",
    "date",
    "whoami",
    "hostname",
    "uname *",
    "rg *",
    "fd *",
    "find *",
    "tree *",
    "tree",
    "du *",
    "df *",
    "env",
    "node -v",
    "node --version",
    "python --version",
    "python3 --version",
    "cargo *",
    "rustc *",
    "go *",
    "make*",
    "cmake*",
    "tsc*",
    "eslint*",
    "prettier*",
    "jest*",
    "vitest*",
    "pytest*",
)


def default_permissions() -> PermissionConfig:
    """Fresh copy of the built-in permission configuration."""
    return {
        "read": ToolPermissions(default="allow"),
        "glob": ToolPermissions(default="allow"),
        "grep": ToolPermissions(default="allow"),
        "write": ToolPermissions(default="ask"),
        "edit": ToolPermissions(default="ask"),
        "bash": ToolPermissions(
            default="ask",
            rules=[rule.model_copy() for rule in (*_BASH_DENY, *_BASH_ALLOW)],
        ),
    }


DEFAULT_PERMISSIONS: PermissionConfig = default_permissions()


def merge_tool_permissions(defaults: ToolPermissions, user: dict) -> ToolPermissions:
    """User rules go ahead of defaults; a user default replaces the built-in one."""
    user_rules = [PermissionRule.model_validate(rule) for rule in user.get("rules") or []]
    return ToolPermissions(
        default=user.get("default") or defaults.default,
        rules=[*user_rules, *defaults.rules] if user_rules else list(defaults.rules),
    )


def merge_permissions(defaults: PermissionConfig, user: dict) -> PermissionConfig:
    """Merge a raw `permissions` settings mapping onto the defaults."""
    result = dict(defaults)
    for tool in CONFIGURABLE_TOOLS:
        user_tool = user.get(tool)
        if isinstance(user_tool, dict):
            base = defaults.get(tool) or ToolPermissions(default="ask")
            result[tool] = merge_tool_permissions(base, user_tool)
    return result


def load_settings(path: Path | str | None = None) -> PermissionConfig:
    """Load permissions from the JSON settings file.

    A missing file yields the defaults. A corrupt or unreadable file is
    logged and also yields the defaults.
    """
    settings_path = Path(path).expanduser() if path else DEFAULT_SETTINGS_PATH
    if not settings_path.exists():
        return default_permissions()

    try:
        settings = json.loads(settings_path.read_text(encoding="utf-8"))
        user = settings.get("permissions") or {}
        if not isinstance(user, dict):
            raise ValueError("'permissions' must be an object")
        return merge_permissions(default_permissions(), user)
    except (OSError, ValueError, AttributeError, ValidationError) as e:
        log.warning("Failed to load settings, using defaults", path=str(settings_path), error=str(e))
        return default_permissions()


def save_settings(permissions: PermissionConfig, path: Path | str | None = None) -> Path:
    """Write permissions to the JSON settings file."""
    settings_path = Path(path).expanduser() if path else DEFAULT_SETTINGS_PATH
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "permissions": {
            tool: entry.model_dump(mode="json") for tool, entry in permissions.items()
        }
    }
    settings_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return settings_path


_SHELL_SEPARATOR_TOKENS = {";", "&&", "||", "|", "&", ";;", "|&"}
_SHELL_INTERPRETERS = {"sh", "bash", "zsh", "dash"}
_MAX_SHELL_NESTING = 3


def _tokenize_shell_command(command: str) -> list[str]:
    """Tokenize a shell command keeping control operators as tokens."""
    lexer = shlex.shlex(command, posix=True, punctuation_chars=";&|")
    lexer.whitespace_split = True
    lexer.commenters = ""
    return list(lexer)


def _split_shell_segments(command: str) -> list[list[str]]:
    segments: list[list[str]] = []
    current: list[str] = []
    for token in _tokenize_shell_command(command):
        if token in _SHELL_SEPARATOR_TOKENS and not (current and current[-1].endswith((">", "<"))):
            if current:
                segments.append(current)
                current = []
            continue
        current.append(token)
    if current:
        segments.append(current)
    return segments


def shell_segments(command: str, depth: int = 0) -> list[str]:
    """Each simple command of a shell line, `sh -c` scripts included.

    Raises:
        ValueError if the command cannot be tokenized (unbalanced quotes)
    """
    texts: list[str] = []
    for tokens in _split_shell_segments(command):
        texts.append(" ".join(tokens))
        if depth >= _MAX_SHELL_NESTING or Path(tokens[0]).name not in _SHELL_INTERPRETERS:
            continue
        if "-c" in tokens[1:-1]:
            script = tokens[tokens.index("-c", 1) + 1]
            texts.append(script)
            texts.extend(shell_segments(script, depth + 1))
    return texts


def match_pattern(value: str, pattern: str) -> bool:
    """Glob match over the whole string; `*` also spans `/`."""
    return fnmatch.fnmatchcase(value, pattern)


class PermissionManager:
    """Decides allow/ask/deny for tool invocations.

    `ask` verdicts are resolved through the injected prompt callback and
    remembered for the lifetime of the manager when approved.
    """

    def __init__(
        self,
        config: PermissionConfig | None = None,
        prompt_fn: PermissionPromptFn | None = None,
        ask_fallback: PermissionAction = "deny",
    ):
        self._config: PermissionConfig = dict(config) if config is not None else load_settings()
        self._prompt_fn = prompt_fn
        self._ask_fallback = ask_fallback
        self._session_allowed: set[str] = set()

    def set_prompt_fn(self, prompt_fn: PermissionPromptFn | None) -> None:
        self._prompt_fn = prompt_fn

    def _tool_config(self, tool: str) -> ToolPermissions:
        return self._config.get(tool) or ToolPermissions(default="ask")

    def _match(self, tool: str, tool_config: ToolPermissions, value: str) -> PermissionCheckResult:
        rules = tool_config.rules if value else []
        for rule in rules:
            if not match_pattern(value, rule.pattern):
                continue
            if rule.action == "deny":
                reason = f"Blocked by deny rule: {rule.pattern}"
            elif rule.action == "allow":
                reason = f"Allowed by rule: {rule.pattern}"
            else:
                reason = f"Requires approval: {rule.pattern}"
            return PermissionCheckResult(
                action=rule.action,
                allowed=rule.action == "allow",
                matched_rule=rule,
                reason=reason,
            )

        return PermissionCheckResult(
            action=tool_config.default,
            allowed=tool_config.default == "allow",
            reason=f"Default action for {tool}: {tool_config.default}",
        )

    def evaluate(self, tool: str, value: str = "") -> PermissionCheckResult:
        """Evaluate without prompting.

        Shell commands are also checked segment by segment: any denied
        segment denies the whole line, and a chained line is only allowed
        when every segment is.
        """
        tool_config = self._tool_config(tool)
        if not value:
            return self._match(tool, tool_config, "")

        result = self._match(tool, tool_config, value)
        if tool != "bash" or result.action == "deny":
            return result

        try:
            segments = shell_segments(value)
        except ValueError:
            if result.action != "allow":
                return result
            return PermissionCheckResult(
                action="ask",
                allowed=False,
                reason="Requires approval: command could not be parsed",
            )

        verdicts = [self._match(tool, tool_config, segment) for segment in segments]
        for verdict in verdicts:
            if verdict.action == "deny":
                return verdict
        if not verdicts or (result.action == "ask" and result.matched_rule is not None):
            return result
        if len(verdicts) == 1 and not result.allowed:
            return result
        for verdict in verdicts:
            if not verdict.allowed:
                return verdict
        return result if result.allowed else verdicts[0]

    async def check(self, tool: str, value: str = "") -> bool:
        """Resolve a verdict, prompting the user for `ask`."""
        result = self.evaluate(tool, value)
        if result.action == "allow":
            return True
        if result.action == "deny":
            log.info("Permission denied", tool=tool, reason=result.reason)
            return False

        key = self.session_key(tool, value)
        if key in self._session_allowed:
            return True

        if self._prompt_fn is None:
            return self._ask_fallback == "allow"

        allowed = bool(await self._prompt_fn(tool, value, result.reason))
        if allowed:
            self._session_allowed.add(key)
        log.info("Permission prompt answered", tool=tool, allowed=allowed)
        return allowed

    @staticmethod
    def session_key(tool: str, value: str = "") -> str:
        """Key under which an approved `ask` is remembered."""
        if not value:
            return tool
        if tool == "bash":
            try:
                compound = len(_split_shell_segments(value)) > 1
            except ValueError:
                compound = True
            if compound:
                return f"{tool}:{value}"
            parts = value.split()
            if not parts:
                return tool
            if len(parts) > 1:
                return f"{tool}:{parts[0]}:{parts[1]}"
            return f"{tool}:{parts[0]}"
        return f"{tool}:{value}"

    def allow_for_session(self, tool: str, value: str = "") -> None:
        self._session_allowed.add(self.session_key(tool, value))

    def clear_session(self) -> None:
        self._session_allowed.clear()

    def update_config(self, config: PermissionConfig) -> None:
        """Replace individual tool entries."""
        self._config.update(config)

    def get_config(self) -> PermissionConfig:
        return dict(self._config)
