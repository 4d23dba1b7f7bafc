"""
Selection Filter

把同步入参（结构化数据或环境变量回退）解析为本次运行生效的 SelectionConfig。
空列表表示"全部"，不是"无"。
"""

import json
from typing import Any, Iterable, Optional, Sequence, Set, Union

import yaml
from pydantic import ValidationError

from kubesync.config.settings import Settings, settings as default_settings
from kubesync.core.constants import RESOURCE_ALIASES, SYNC_ORDER, TABLE_NAMES, ResourceKind
from kubesync.core.exceptions import ConfigurationError
from kubesync.core.logging import logger
from kubesync.schemas.sync import SelectionConfig, SyncSpec, TableOptions
from kubesync.services.table_service import matches_table

RawSpec = Union[None, str, bytes, dict, SyncSpec]


def _parse_raw(raw: RawSpec) -> dict:
    if raw is None:
        return {}
    if isinstance(raw, SyncSpec):
        return raw.model_dump()
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return {}
        try:
            data = json.loads(text)
        except ValueError:
            # 非 JSON 时按 YAML 解析
            try:
                data = yaml.safe_load(text)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"同步配置解析失败: {e}") from e
        raw = data
    if not isinstance(raw, dict):
        raise ConfigurationError("同步配置必须是键值结构")
    return raw


def load_sync_spec(
    raw: RawSpec = None,
    config: Optional[Settings] = None,
    require_database: bool = True,
) -> SyncSpec:
    """
    解析同步配置，缺失或为空的字段回退到环境变量（DATABASE_URL / K8S_CONTEXTS / K8S_RESOURCES）

    Raises:
        ConfigurationError: 配置格式非法或缺少数据库地址
    """
    config = config or default_settings
    try:
        spec = SyncSpec.model_validate(_parse_raw(raw))
    except ValidationError as e:
        raise ConfigurationError(f"同步配置非法: {e}") from e

    updates = {}
    if not spec.database_url:
        updates["database_url"] = (config.DATABASE_URL or "").strip()
    if not spec.contexts and config.K8S_CONTEXTS:
        updates["contexts"] = SyncSpec.model_validate({"contexts": config.K8S_CONTEXTS}).contexts
    if not spec.resources and config.K8S_RESOURCES:
        updates["resources"] = SyncSpec.model_validate({"resources": config.K8S_RESOURCES}).resources
    if updates:
        spec = spec.model_copy(update=updates)

    if require_database and not spec.database_url:
        raise ConfigurationError("缺少数据库地址（database_url / DATABASE_URL）")
    return spec


def parse_kinds(names: Iterable[str]) -> Set[ResourceKind]:
    """资源名（含别名，大小写不敏感）转为资源类型"""
    kinds: Set[ResourceKind] = set()
    unknown = []
    for name in names:
        key = name.strip().lower()
        if not key:
            continue
        try:
            kinds.add(ResourceKind(key))
        except ValueError:
            kind = RESOURCE_ALIASES.get(key)
            if kind is None:
                unknown.append(name)
            else:
                kinds.add(kind)
    if unknown:
        raise ConfigurationError(
            f"未知的资源类型: {', '.join(unknown)}，可选: {', '.join(k.value for k in SYNC_ORDER)}"
        )
    return kinds


class SelectionFilter:
    """解析本次运行的集群与资源类型范围"""

    def __init__(self, known_kinds: Sequence[ResourceKind] = tuple(SYNC_ORDER)):
        self.known_kinds = list(known_kinds)

    def resolve(
        self,
        spec: SyncSpec,
        available_contexts: Iterable[str],
        table_options: Optional[TableOptions] = None,
    ) -> SelectionConfig:
        """
        显式列表非空时严格限定为列出的项，为空时表示全部可用项。
        资源类型还需通过宿主的表过滤；显式请求但不存在的上下文保留在结果中，
        由同步引擎解析时记录为 NotFoundError。
        """
        clusters = set(spec.contexts) if spec.contexts else set(available_contexts)

        requested = parse_kinds(spec.resources) if spec.resources else set(self.known_kinds)
        kinds = {k for k in requested if k in self.known_kinds and matches_table(TABLE_NAMES[k], table_options)}
        filtered_out = requested - kinds
        if filtered_out:
            logger.info(f"以下资源类型被表过滤排除: {', '.join(sorted(k.value for k in filtered_out))}")

        excluded = {k for k in self.known_kinds if not matches_table(TABLE_NAMES[k], table_options)}
        return SelectionConfig(
            clusters=frozenset(clusters), kinds=frozenset(kinds), excluded_kinds=frozenset(excluded)
        )
