"""
Messages emitted to a plugin host when syncing through the message sink.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from kubesync.core.constants import ResourceKind


class ColumnDefinition(BaseModel):
    name: str
    type: str
    primary_key: bool = False
    nullable: bool = True
    description: Optional[str] = None


class TableDefinition(BaseModel):
    """表定义声明，宿主据此建表/迁移"""

    name: str
    kind: ResourceKind
    description: Optional[str] = None
    parent: Optional[str] = Field(None, description="外键引用的父表")
    columns: List[ColumnDefinition] = []

    @property
    def primary_key(self) -> List[str]:
        return [c.name for c in self.columns if c.primary_key]


class MigrateTableMessage(BaseModel):
    type: Literal["migrate_table"] = "migrate_table"
    table: TableDefinition


class InsertMessage(BaseModel):
    type: Literal["insert"] = "insert"
    table: str
    record: Dict[str, Any]
