from cardledger.db.database import get_session, init_db
from cardledger.db.operations import (
    delete_card_rows,
    delete_rows,
    find_rows,
    get_collection,
    get_ownership,
    insert_collection,
    insert_row,
    insert_rows,
    list_all_collections,
    list_collections,
    list_rows,
    list_user_rows,
    remove_collection,
)

__all__ = [
    "delete_card_rows",
    "delete_rows",
    "find_rows",
    "get_collection",
    "get_ownership",
    "get_session",
    "init_db",
    "insert_collection",
    "insert_row",
    "insert_rows",
    "list_all_collections",
    "list_collections",
    "list_rows",
    "list_user_rows",
    "remove_collection",
]
