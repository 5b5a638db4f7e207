from fastapi import APIRouter, HTTPException

from storefront_backend.db.base import Base

router = APIRouter()


@router.get("/tables", summary="Mapped table names")
def list_tables():
    """List the table names mapped by the models, including the configured prefix."""
    return {"tables": sorted(Base.metadata.tables)}


@router.get("/tables/{table_name}", summary="Columns of a mapped table")
def describe_table(table_name: str):
    table = Base.metadata.tables.get(table_name)
    if table is None:
        raise HTTPException(status_code=404, detail=f"Unknown table: {table_name}")
    return {
        "table": table.name,
        "columns": [
            {"name": column.name, "type": str(column.type), "nullable": column.nullable}
            for column in table.columns
        ],
        "foreign_keys": sorted(fk.target_fullname for fk in table.foreign_keys),
    }
