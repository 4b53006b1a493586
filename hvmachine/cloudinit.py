"""Merge independently authored cloud-init fragments into one #cloud-config.

Each fragment is parsed on its own as a YAML mapping (JSON is accepted as
YAML). Keys are combined according to a per-key :class:`MergeStrategy`
table. List sections accumulate across fragments in fragment order; a
fragment does not have to be usable standalone, only the merged document
has to be.
"""

from __future__ import annotations

import enum
from typing import Any, Iterable, Mapping

import yaml

from .config import UNKNOWN_KEY_POLICIES
from .errors import (
    AccumulatorTypeError,
    ConfigError,
    FragmentParseError,
    MergeConflictError,
)

CLOUD_CONFIG_HEADER = '#cloud-config\n'


class MergeStrategy(enum.Enum):
    APPEND = 'append'
    OVERRIDE = 'override'
    ERROR_ON_CONFLICT = 'error_on_conflict'
    DROP = 'drop'


LIST_SECTIONS = (
    'packages',
    'runcmd',
    'ssh_authorized_keys',
    'groups',
    'users',
    'write_files',
    'bootcmd',
)

DEFAULT_STRATEGIES: dict[str, MergeStrategy] = {
    **{key: MergeStrategy.APPEND for key in LIST_SECTIONS},
    'package_update': MergeStrategy.OVERRIDE,
    'package_upgrade': MergeStrategy.OVERRIDE,
    'hostname': MergeStrategy.ERROR_ON_CONFLICT,
    'fqdn': MergeStrategy.ERROR_ON_CONFLICT,
}

_UNKNOWN_KEY_STRATEGIES = {
    'override': MergeStrategy.OVERRIDE,
    'drop': MergeStrategy.DROP,
}


def parse_fragment(text: str | bytes, index: int = 0) -> dict[str, Any]:
    if isinstance(text, bytes):
        try:
            text = text.decode('utf-8')
        except UnicodeDecodeError as ex:
            raise FragmentParseError(index, f'not valid UTF-8: {ex}') from ex
    try:
        obj = yaml.safe_load(text)
    except yaml.YAMLError as ex:
        raise FragmentParseError(index, str(ex)) from ex
    if obj is None:
        return {}
    if not isinstance(obj, dict):
        raise FragmentParseError(
            index, f'expected a mapping, got {type(obj).__name__}'
        )
    return obj


class CloudInitMerger:
    def __init__(
        self,
        strategies: Mapping[str, MergeStrategy] | None = None,
        *,
        default: MergeStrategy = MergeStrategy.OVERRIDE,
    ):
        self.strategies = dict(
            DEFAULT_STRATEGIES if strategies is None else strategies
        )
        self.default = default

    @classmethod
    def from_policy(cls, unknown_keys: str) -> 'CloudInitMerger':
        """Build a merger whose unlisted keys follow ``override`` or ``drop``."""
        try:
            default = _UNKNOWN_KEY_STRATEGIES[unknown_keys]
        except KeyError:
            raise ConfigError(
                'unknown cloud-init key policy must be one of '
                f'{", ".join(UNKNOWN_KEY_POLICIES)} (got {unknown_keys!r})'
            ) from None
        return cls(default=default)

    def strategy_for(self, key: str) -> MergeStrategy:
        return self.strategies.get(key, self.default)

    def merge(
        self,
        fragments: Iterable[str | bytes | Mapping[str, Any]],
        *,
        into: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        result: dict[str, Any] = {} if into is None else into
        for index, fragment in enumerate(fragments):
            if isinstance(fragment, Mapping):
                doc = dict(fragment)
            else:
                doc = parse_fragment(fragment, index)
            for key, value in doc.items():
                self._merge_key(result, key, value)
        return result

    def _merge_key(self, result: dict[str, Any], key: str, value: Any) -> None:
        strategy = self.strategy_for(key)
        if strategy is MergeStrategy.DROP:
            return
        if strategy is MergeStrategy.OVERRIDE:
            result[key] = value
            return
        if strategy is MergeStrategy.ERROR_ON_CONFLICT:
            if key in result and result[key] != value:
                raise MergeConflictError(key, result[key], value)
            result[key] = value
            return
        acc = result.setdefault(key, [])
        if not isinstance(acc, list):
            raise AccumulatorTypeError(key, acc)
        # A list value contributes its items; nested lists (runcmd argv
        # entries) stay whole.
        if isinstance(value, list):
            acc.extend(value)
        elif value is not None:
            acc.append(value)

    def render(self, doc: Mapping[str, Any]) -> str:
        return render_cloud_config(doc)


def render_cloud_config(doc: Mapping[str, Any]) -> str:
    body = yaml.safe_dump(
        dict(doc), default_flow_style=False, sort_keys=False, width=4096
    )
    return CLOUD_CONFIG_HEADER + body


def merge_cloud_init(
    *fragments: str | bytes | Mapping[str, Any],
    merger: CloudInitMerger | None = None,
) -> str:
    merger = merger or CloudInitMerger()
    return merger.render(merger.merge(fragments))
