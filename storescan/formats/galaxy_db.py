"""
Read-only access to the GOG Galaxy 2.0 SQLite database (galaxy-2.0.db).

The schema differs between Galaxy releases, so the tables present are
inspected first and the product query is assembled from what exists.
Each call opens its own connection and closes it before returning.
"""
import json
import logging
import sqlite3
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Set

logger = logging.getLogger(__name__)

TITLE_PIECE_TYPES = ("originalTitle", "title")


class GalaxySchemaError(Exception):
    """The database has none of the tables that list installed products."""


@dataclass(frozen=True)
class GalaxyProductRow:
    product_id: str
    install_path: Optional[str] = None
    title: Optional[str] = None


def connect_readonly(db_path: str) -> sqlite3.Connection:
    uri = Path(db_path).resolve().as_uri() + "?mode=ro"
    return sqlite3.connect(uri, uri=True)


def list_tables(conn: sqlite3.Connection) -> Set[str]:
    """Lower-cased table names; SQLite matches identifiers case-insensitively."""
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row[0].lower() for row in rows}


def list_columns(conn: sqlite3.Connection, table: str) -> Set[str]:
    # table names come from sqlite_master, never from user input
    rows = conn.execute(f'PRAGMA table_info("{table}")').fetchall()
    return {row[1].lower() for row in rows}


def _product_query(conn: sqlite3.Connection, tables: Set[str]) -> str:
    if "installedbaseproducts" in tables:
        columns = list_columns(conn, "InstalledBaseProducts")
        path_expr = "installationPath" if "installationpath" in columns else "NULL"
        return (f"SELECT CAST(productId AS TEXT), {path_expr} "
                f"FROM InstalledBaseProducts ORDER BY productId")

    if "installedproducts" in tables:
        path_expr = "NULL"
        if "executablesupportfiles" in tables:
            esf_columns = list_columns(conn, "ExecutableSupportFiles")
            if {"productid", "installpath"} <= esf_columns:
                path_expr = ("(SELECT MIN(e.installPath) FROM ExecutableSupportFiles e "
                             "WHERE e.productId = p.productId)")
        return (f"SELECT CAST(p.productId AS TEXT), {path_expr} "
                f"FROM InstalledProducts p ORDER BY p.productId")

    raise GalaxySchemaError(
        f"No InstalledBaseProducts or InstalledProducts table (found: {', '.join(sorted(tables)) or 'none'})"
    )


def _title_from_piece(value: Optional[str]) -> Optional[str]:
    """GamePieces values are JSON documents like {"title": "..."}."""
    if not value:
        return None
    try:
        data = json.loads(value)
    except ValueError:
        return value.strip() or None
    if isinstance(data, dict):
        title = data.get("title")
        if isinstance(title, str) and title.strip():
            return title.strip()
    return None


def _read_titles(conn: sqlite3.Connection, tables: Set[str]) -> Dict[str, str]:
    titles: Dict[str, str] = {}

    if "limiteddetails" in tables and {"productid", "title"} <= list_columns(conn, "LimitedDetails"):
        for product_id, title in conn.execute(
                "SELECT CAST(productId AS TEXT), title FROM LimitedDetails"):
            if title:
                titles[product_id] = title

    if {"gamepieces", "gamepiecetypes"} <= tables:
        pieces = list_columns(conn, "GamePieces")
        piece_types = list_columns(conn, "GamePieceTypes")
        if {"releasekey", "gamepiecetypeid", "value"} <= pieces and {"id", "type"} <= piece_types:
            rows = conn.execute(
                "SELECT gp.releaseKey, gpt.type, gp.value FROM GamePieces gp "
                "JOIN GamePieceTypes gpt ON gp.gamePieceTypeId = gpt.id "
                "WHERE gp.releaseKey LIKE 'gog_%' AND gpt.type IN (?, ?)",
                TITLE_PIECE_TYPES,
            ).fetchall()
            # originalTitle wins over title
            rows.sort(key=lambda row: TITLE_PIECE_TYPES.index(row[1]), reverse=True)
            for release_key, _, value in rows:
                title = _title_from_piece(value)
                if title:
                    titles[release_key[len("gog_"):]] = title

    return titles


def read_installed_products(db_path: str) -> List[GalaxyProductRow]:
    """List installed products from a Galaxy database.

    Args:
        db_path: Path to galaxy-2.0.db (or the legacy galaxy.db).

    Returns:
        One row per installed product, ordered by product id. ``title`` is
        None when the database has no title for the product.

    Raises:
        GalaxySchemaError: if no installed-products table exists.
        sqlite3.Error: on any database failure.
    """
    with closing(connect_readonly(db_path)) as conn:
        tables = list_tables(conn)
        query = _product_query(conn, tables)
        titles = _read_titles(conn, tables)

        products = []
        for product_id, install_path in conn.execute(query):
            if not product_id:
                continue
            products.append(GalaxyProductRow(
                product_id=product_id,
                install_path=install_path or None,
                title=titles.get(product_id),
            ))

    logger.debug(f"[GOG] {len(products)} installed products in {db_path}")
    return products
