from typing import Dict, List, Union

from pydantic import BaseModel, ConfigDict, Field

# Closed set of values a materialized cell may hold.
CellValue = Union[None, bool, int, float, str]

Row = Dict[str, CellValue]


class ColumnSchema(BaseModel):
    """One column of an introspected table, in ordinal order."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    data_type: str = Field(alias="dataType")
    is_nullable: bool = Field(alias="isNullable")
    is_primary: bool = Field(default=False, alias="isPrimary")


class TableSchema(BaseModel):
    """Ordered column list for one table, produced fresh per introspection."""

    model_config = ConfigDict(populate_by_name=True)

    columns: List[ColumnSchema] = Field(default_factory=list)

    @property
    def primary_key_columns(self) -> List[ColumnSchema]:
        return [col for col in self.columns if col.is_primary]

    @property
    def has_primary_key(self) -> bool:
        return any(col.is_primary for col in self.columns)


class GridColumn(BaseModel):
    """Display metadata for one data-grid column."""

    model_config = ConfigDict(populate_by_name=True)

    field: str
    header_name: str = Field(alias="headerName")
    width: int = 150
    type: str


class TablePage(BaseModel):
    """One page of materialized rows plus the table's total row count."""

    model_config = ConfigDict(populate_by_name=True)

    rows: List[Row] = Field(default_factory=list)
    total_count: int = Field(alias="totalCount")
    page: int
    page_size: int = Field(alias="pageSize")
