"""Cypher query repository for Report and Metadata nodes."""
import json
from typing import Any, Optional, Sequence

from neo4j import ManagedTransaction, Session as Neo4jSession

METADATA_ID = "general"


def fetch_reports(session: Neo4jSession, since_ms: Optional[int] = None) -> list[dict[str, Any]]:
    """
    Report documents newest first, optionally only those with timestamp > since_ms.
    Rows written without a status read back as verified.
    """
    query = """
    MATCH (r:Report)
    WHERE $since IS NULL OR r.timestamp > $since
    RETURN r.id AS id, r.doc AS doc, coalesce(r.status, 'verified') AS status
    ORDER BY r.timestamp DESC
    """
    docs = []
    for record in session.run(query, since=since_ms):
        doc = json.loads(record["doc"]) if record["doc"] else {}
        doc["id"] = record["id"]
        doc["status"] = record["status"]
        docs.append(doc)
    return docs


def count_reports(session: Neo4jSession) -> int:
    record = session.run("MATCH (r:Report) RETURN count(r) AS n").single()
    return int(record["n"]) if record else 0


def _upsert_reports_tx(tx: ManagedTransaction, rows: list[dict[str, Any]]) -> None:
    query = """
    UNWIND $rows AS row
    MERGE (r:Report {id: row.id})
    SET r.doc = row.doc,
        r.timestamp = row.timestamp,
        r.status = row.status,
        r.type = row.type
    """
    tx.run(query, rows=rows)


def upsert_reports(session: Neo4jSession, documents: Sequence[dict[str, Any]]) -> None:
    """Write camelCase report documents (each with an id) in one transaction."""
    rows = [
        {
            "id": doc["id"],
            "doc": json.dumps(doc),
            "timestamp": doc["timestamp"],
            "status": doc.get("status", "pending"),
            "type": doc["type"],
        }
        for doc in documents
    ]
    session.execute_write(_upsert_reports_tx, rows)


def set_status(session: Neo4jSession, report_id: str, status: str) -> bool:
    """Patch status in place. False if no such report."""
    query = """
    MATCH (r:Report {id: $id})
    SET r.status = $status
    RETURN r.id AS id
    """
    record = session.run(query, id=report_id, status=status).single()
    return record is not None


def _delete_reports_tx(tx: ManagedTransaction, ids: list[str]) -> int:
    query = """
    MATCH (r:Report)
    WHERE r.id IN $ids
    DETACH DELETE r
    RETURN count(r) AS n
    """
    record = tx.run(query, ids=ids).single()
    return int(record["n"]) if record else 0


def delete_reports(session: Neo4jSession, report_ids: Sequence[str]) -> int:
    """Delete all given reports in a single transaction. Returns how many existed."""
    return session.execute_write(_delete_reports_tx, list(report_ids))


def get_last_updated(session: Neo4jSession) -> Optional[int]:
    query = "MATCH (m:Metadata {id: $id}) RETURN m.lastUpdated AS ts"
    record = session.run(query, id=METADATA_ID).single()
    if record is None or record["ts"] is None:
        return None
    return int(record["ts"])


def set_last_updated(session: Neo4jSession, ts: int) -> None:
    query = "MERGE (m:Metadata {id: $id}) SET m.lastUpdated = $ts"
    session.run(query, id=METADATA_ID, ts=ts).consume()
