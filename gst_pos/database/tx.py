# gst_pos/database/tx.py
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Iterator


@contextmanager
def immediate_tx(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Start an IMMEDIATE transaction (write lock taken up front), commit on
    success, roll back on error.

    If the connection is already inside a transaction the block joins it:
    nothing is committed here and errors propagate to the outer owner, which
    rolls back the whole unit of work.
    """
    if conn.in_transaction:
        yield conn
        return

    cur = conn.cursor()
    try:
        cur.execute("BEGIN IMMEDIATE")
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        cur.close()
