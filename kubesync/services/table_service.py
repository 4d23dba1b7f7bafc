"""
Table definitions and host table filtering
"""

from fnmatch import fnmatchcase
from typing import List, Optional

from kubesync.core.constants import SYNC_ORDER, TABLE_NAMES, ResourceKind
from kubesync.models import MODELS_BY_KIND
from kubesync.schemas.messages import ColumnDefinition, TableDefinition
from kubesync.schemas.sync import TableOptions


def matches_table(table_name: str, options: Optional[TableOptions] = None) -> bool:
    """宿主表过滤：tables 为空表示全部，skip_tables 优先；支持通配符"""
    if options is None:
        return True
    if any(fnmatchcase(table_name, pattern) for pattern in options.skip_tables):
        return False
    if not options.tables:
        return True
    return any(fnmatchcase(table_name, pattern) for pattern in options.tables)


def table_definition(kind: ResourceKind) -> TableDefinition:
    model = MODELS_BY_KIND[kind]
    table = model.__table__
    parent = None
    columns = []
    for column in table.columns:
        for fk in column.foreign_keys:
            parent = fk.column.table.name
        columns.append(
            ColumnDefinition(
                name=column.name,
                type=str(column.type),
                primary_key=column.primary_key,
                nullable=bool(column.nullable) and not column.primary_key,
                description=column.comment,
            )
        )
    return TableDefinition(
        name=table.name,
        kind=kind,
        description=(model.__doc__ or "").strip() or None,
        parent=parent,
        columns=columns,
    )


def table_definitions(options: Optional[TableOptions] = None) -> List[TableDefinition]:
    return [
        table_definition(kind)
        for kind in SYNC_ORDER
        if matches_table(TABLE_NAMES[kind], options)
    ]
