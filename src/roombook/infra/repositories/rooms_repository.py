"""Rooms repository - raw SQL with psycopg2."""

from __future__ import annotations

from psycopg2.extensions import cursor as PgCursor

ROOM_COLUMNS = ("id", "name", "description", "capacity", "facilities", "is_active")

_SELECT_COLUMNS = ", ".join(ROOM_COLUMNS)


def room_row_to_dict(row: tuple) -> dict:
    data = dict(zip(ROOM_COLUMNS, row))
    data["id"] = str(data["id"])
    data["facilities"] = list(data["facilities"] or [])
    return data


def lock_active_room(cur: PgCursor, room_id: str) -> dict | None:
    """Lock an active room row FOR UPDATE.

    Every booking write for a room starts here, so writers for the same room
    are serialized until the holder commits or rolls back.

    Returns:
        Room dict, or None if the room does not exist or is inactive.
    """
    cur.execute(
        f"SELECT {_SELECT_COLUMNS} FROM rooms WHERE id = %s AND is_active = true FOR UPDATE",
        (room_id,),
    )
    row = cur.fetchone()
    return room_row_to_dict(row) if row is not None else None


def get_room(cur: PgCursor, room_id: str) -> dict | None:
    cur.execute(f"SELECT {_SELECT_COLUMNS} FROM rooms WHERE id = %s", (room_id,))
    row = cur.fetchone()
    return room_row_to_dict(row) if row is not None else None


def get_active_room_by_name(cur: PgCursor, name: str) -> dict | None:
    cur.execute(
        f"SELECT {_SELECT_COLUMNS} FROM rooms WHERE name = %s AND is_active = true",
        (name,),
    )
    row = cur.fetchone()
    return room_row_to_dict(row) if row is not None else None


def list_rooms(cur: PgCursor, *, include_inactive: bool = False) -> list[dict]:
    where = "" if include_inactive else "WHERE is_active = true"
    cur.execute(f"SELECT {_SELECT_COLUMNS} FROM rooms {where} ORDER BY name")
    return [room_row_to_dict(row) for row in cur.fetchall()]


def insert_room(
    cur: PgCursor,
    *,
    name: str,
    description: str | None,
    capacity: int,
    facilities: list[str],
    is_active: bool,
) -> dict:
    """Insert a room.

    Raises:
        psycopg2.errors.UniqueViolation: If the name is taken.
    """
    cur.execute(
        f"""
        INSERT INTO rooms (name, description, capacity, facilities, is_active)
        VALUES (%s, %s, %s, %s, %s)
        RETURNING {_SELECT_COLUMNS}
        """,
        (name, description, capacity, facilities, is_active),
    )
    return room_row_to_dict(cur.fetchone())


def update_room(cur: PgCursor, room_id: str, changes: dict) -> dict | None:
    """Apply a partial update. ``changes`` keys must be ROOM_COLUMNS names (minus id)."""
    sets = ["updated_at = now()"]
    params: list = []
    for column in ROOM_COLUMNS[1:]:
        if column in changes:
            sets.append(f"{column} = %s")
            params.append(changes[column])
    params.append(room_id)

    cur.execute(
        f"""
        UPDATE rooms
        SET {", ".join(sets)}
        WHERE id = %s
        RETURNING {_SELECT_COLUMNS}
        """,  # noqa: S608 - column names come from ROOM_COLUMNS only
        params,
    )
    row = cur.fetchone()
    return room_row_to_dict(row) if row is not None else None
