"""Neo4j connection: singleton driver backing the remote report store."""
import logging

from neo4j import GraphDatabase as Neo4j

from safetymap.config import settings

logger = logging.getLogger(__name__)

_instance: "GraphDatabase | None" = None


class GraphDatabase:
    """Singleton Neo4j driver. Connect on startup, close on shutdown."""

    def __init__(self) -> None:
        self._driver = None
        if settings.neo4j_uri and settings.neo4j_username and settings.neo4j_password:
            try:
                self._driver = Neo4j.driver(
                    settings.neo4j_uri,
                    auth=(settings.neo4j_username, settings.neo4j_password),
                    connection_timeout=settings.remote_connect_timeout_seconds,
                )
                logger.info("Neo4j driver initialized for %s", settings.neo4j_uri)
            except Exception as e:
                # Bad URI scheme etc.; the app runs on the local store instead
                logger.warning("Neo4j driver initialization failed (using local store): %s", e)
        else:
            logger.warning(
                "Neo4j not configured: set NEO4J_URI, NEO4J_USERNAME, NEO4J_PASSWORD (using local store)"
            )

    @property
    def driver(self):
        return self._driver

    @classmethod
    def get_instance(cls) -> "GraphDatabase":
        """Return the singleton instance."""
        global _instance
        if _instance is None:
            _instance = cls()
        return _instance

    def close(self) -> None:
        """Shut down the driver. Call on application shutdown."""
        if self._driver:
            self._driver.close()
            self._driver = None
            logger.info("Neo4j driver closed")
