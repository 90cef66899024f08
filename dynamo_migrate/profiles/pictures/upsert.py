"""
Idempotent writes of picture records.

A picture may be written many times: by overlapping export files, by a
resumed run redoing an interrupted file, or by rows of one picture landing
in different files. The conflict rules make every rewrite converge:

- description_i18n is merged, incoming locales winning
- agencyId, focal points and taxonomy come from the incoming record
- path, imageType, width and height keep the stored values when only the
  stored variants hold a full-size rendition with a path, and an incoming
  null never replaces a stored value
- variants are merged by (formatId, formatPictureId) with path preference
- everything else keeps the stored value

`build_upsert_query` expresses the rules in SQL for PostgreSQL and
`resolve_conflict` in Python for the in-memory target.
"""

import time
from collections.abc import Iterable, Sequence

from psycopg import sql

from dynamo_migrate.batch.retry import insert_with_retry
from dynamo_migrate.observability.logger import get_logger
from dynamo_migrate.profiles.base import SkipCallback
from dynamo_migrate.warehouse.target import (
    MemoryTarget,
    PostgreSQLTarget,
    TargetDialect,
    build_bindings,
    build_insert,
)

from .constants import COLUMNS, ID_SEQUENCE, REFERENCE_FORMAT_ID, TABLE_NAME
from .transform import PictureRecord, has_reference_variant, merge_duplicate, merge_variants

logger = get_logger(__name__)

# Columns guarded by the full-size rendition rule: (column, model field)
QUALITY_COLUMNS: tuple[tuple[str, str], ...] = (
    ("path", "path"),
    ("imageType", "image_type"),
    ("width", "width"),
    ("height", "height"),
)

# Columns always taken from the incoming record: (column, model field)
INCOMING_COLUMNS: tuple[tuple[str, str], ...] = (
    ("agencyId", "agency_id"),
    ("focalPointX", "focal_point_x"),
    ("focalPointY", "focal_point_y"),
    ("taxonomy", "taxonomy"),
)


def picture_label(picture: PictureRecord) -> str:
    return f"picture id={picture.id}"


def deduplicate_by_id(pictures: Iterable[PictureRecord]) -> list[PictureRecord]:
    """
    Collapse records sharing an id so a batch never touches a row twice.

    Order of first appearance is kept.
    """
    unique: dict[int, PictureRecord] = {}
    for picture in pictures:
        existing = unique.get(picture.id)
        unique[picture.id] = picture if existing is None else merge_duplicate(existing, picture)
    return list(unique.values())


# =======================
# SQL
# =======================

def _has_reference_variant_sql(source: sql.Composable) -> sql.Composed:
    return sql.SQL(
        "EXISTS (SELECT 1 FROM jsonb_array_elements(COALESCE({source}.{variants}, '[]'::jsonb)) AS v "
        "WHERE v->>'formatId' = {format_id} AND v->>'path' IS NOT NULL)"
    ).format(
        source=source,
        variants=sql.Identifier("variants"),
        format_id=sql.Literal(str(REFERENCE_FORMAT_ID)),
    )


def _variant_rows_sql(source: sql.Composable, source_order: int) -> sql.Composed:
    return sql.SQL(
        "SELECT value AS variant, "
        "COALESCE(value->>'formatId', 'null') AS format_id_key, "
        "COALESCE(value->>'formatPictureId', 'null') AS format_picture_id_key, "
        "{source_order} AS source_order, ordinality AS variant_order "
        "FROM jsonb_array_elements(COALESCE({source}.{variants}, '[]'::jsonb)) WITH ORDINALITY"
    ).format(
        source=source,
        variants=sql.Identifier("variants"),
        source_order=sql.Literal(source_order),
    )


def _merged_variants_sql(stored: sql.Composable, excluded: sql.Composable) -> sql.Composed:
    # One row per identity: entries with a path first, then incoming over stored,
    # then later over earlier within a list. Identities keep first-seen order.
    return sql.SQL(
        "(SELECT COALESCE(jsonb_agg(variant ORDER BY first_seen), '[]'::jsonb) "
        "FROM (SELECT variant, "
        "MIN(ARRAY[source_order, variant_order]) OVER (PARTITION BY format_id_key, format_picture_id_key) AS first_seen, "
        "ROW_NUMBER() OVER (PARTITION BY format_id_key, format_picture_id_key "
        "ORDER BY (variant->>'path' IS NOT NULL) DESC, source_order DESC, variant_order DESC) AS row_num "
        "FROM ({stored_rows} UNION ALL {incoming_rows}) AS all_variants) AS ranked "
        "WHERE row_num = 1)"
    ).format(
        stored_rows=_variant_rows_sql(stored, 0),
        incoming_rows=_variant_rows_sql(excluded, 1),
    )


def build_upsert_query(row_count: int) -> sql.Composed:
    """
    Build the multi-row conflict-merging upsert for `row_count` pictures.
    """
    stored = sql.Identifier(TABLE_NAME)
    excluded = sql.SQL("EXCLUDED")
    incoming_has_reference = _has_reference_variant_sql(excluded)
    stored_has_reference = _has_reference_variant_sql(stored)

    assignments: list[sql.Composable] = []
    for column, _ in QUALITY_COLUMNS:
        assignments.append(sql.SQL(
            "{col} = CASE WHEN NOT {incoming_has} AND {stored_has} THEN {stored}.{col} "
            "ELSE COALESCE({excluded}.{col}, {stored}.{col}) END"
        ).format(
            col=sql.Identifier(column),
            incoming_has=incoming_has_reference,
            stored_has=stored_has_reference,
            stored=stored,
            excluded=excluded,
        ))

    assignments.append(sql.SQL(
        "{col} = COALESCE({stored}.{col}, '{{}}'::jsonb) || {excluded}.{col}"
    ).format(col=sql.Identifier("description_i18n"), stored=stored, excluded=excluded))

    for column, _ in INCOMING_COLUMNS:
        assignments.append(sql.SQL("{col} = {excluded}.{col}").format(
            col=sql.Identifier(column), excluded=excluded,
        ))

    assignments.append(sql.SQL("{col} = {merged}").format(
        col=sql.Identifier("variants"),
        merged=_merged_variants_sql(stored, excluded),
    ))

    return build_insert(TABLE_NAME, COLUMNS, row_count) + sql.SQL(
        " ON CONFLICT ({key}) DO UPDATE SET {assignments}"
    ).format(key=sql.Identifier("id"), assignments=sql.SQL(", ").join(assignments))


# =======================
# IN-MEMORY
# =======================

def resolve_conflict(stored: PictureRecord | None, incoming: PictureRecord) -> PictureRecord:
    """
    Apply the conflict rules to a stored record and an incoming one.

    Args:
        stored: Record currently stored under the id, if any
        incoming: Record being written

    Returns:
        The record to store
    """
    if stored is None:
        return incoming

    keep_stored_quality = (
        not has_reference_variant(incoming.variants)
        and has_reference_variant(stored.variants)
    )

    update = {}
    for _, field in QUALITY_COLUMNS:
        incoming_value = getattr(incoming, field)
        if keep_stored_quality or incoming_value is None:
            update[field] = getattr(stored, field)
        else:
            update[field] = incoming_value

    for _, field in INCOMING_COLUMNS:
        update[field] = getattr(incoming, field)

    update["description_i18n"] = {**stored.description_i18n, **incoming.description_i18n}
    update["variants"] = merge_variants(stored.variants, incoming.variants)
    return stored.model_copy(update=update)


# =======================
# WRITES
# =======================

async def save_pictures(
    target: TargetDialect,
    pictures: Sequence[PictureRecord],
    on_skip: SkipCallback | None = None,
) -> int:
    """
    Deduplicate and write a batch of pictures with binary-split retry.

    Args:
        target: Open target dialect
        pictures: Records to write
        on_skip: Called for each picture that could not be written

    Returns:
        Number of pictures written
    """
    unique = deduplicate_by_id(pictures)
    if not unique:
        return 0

    if isinstance(target, PostgreSQLTarget):
        async def insert_fn(batch: Sequence[PictureRecord]) -> int:
            rowcount = await target.execute(build_upsert_query(len(batch)), build_bindings(batch, COLUMNS))
            return rowcount if rowcount >= 0 else len(batch)
    elif isinstance(target, MemoryTarget):
        async def insert_fn(batch: Sequence[PictureRecord]) -> int:
            for picture in batch:
                target.records[picture.id] = resolve_conflict(target.records.get(picture.id), picture)
            return len(batch)
    else:
        insert_fn = target.upsert

    start = time.monotonic()
    written = await insert_with_retry(unique, insert_fn, picture_label, on_skip)
    logger.debug(
        f"Upserted {written}/{len(unique)} pictures in {(time.monotonic() - start) * 1000:.0f}ms",
        extra={"written": written, "batch_size": len(unique), "target": target.name}
    )
    return written


async def reset_id_sequence(target: TargetDialect) -> None:
    """Move picture_id_seq past the highest migrated id."""
    if isinstance(target, PostgreSQLTarget):
        query = sql.SQL("SELECT setval({seq}, (SELECT COALESCE(MAX({id}), 0) + 1 FROM {table}))").format(
            seq=sql.Literal(ID_SEQUENCE),
            id=sql.Identifier("id"),
            table=sql.Identifier(TABLE_NAME),
        )
        await target.execute(query)
        logger.info(f"Sequence {ID_SEQUENCE} reset to MAX(id) + 1", extra={"sequence": ID_SEQUENCE})

    await target.on_complete()
