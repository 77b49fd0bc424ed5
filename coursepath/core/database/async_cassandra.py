"""Async Cassandra connection for the progression store.

Provides:
- A single cluster/session pair shared by all repositories
- Session with aexecute() for non-blocking queries (cassandra-asyncio-driver)
- Keyspace and table bootstrap at startup

Attempt numbers and certificate slots are claimed with lightweight
transactions, so the default execution profile reads and writes at quorum
and uses serial consistency for the ``IF NOT EXISTS`` paxos round. A quorum
read after a lost LWT always sees the winner's row.
"""

import structlog
from cassandra import ConsistencyLevel
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import EXEC_PROFILE_DEFAULT, ExecutionProfile
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from coursepath.catalog.models import CATALOG_TABLES_CQL
from coursepath.certificates.models import CERTIFICATES_TABLES_CQL
from coursepath.config.settings import Settings, get_settings
from coursepath.progress.models import PROGRESS_TABLES_CQL
from coursepath.quizzes.models import QUIZ_TABLES_CQL


logger = structlog.get_logger(__name__)

# Catalog tables belong to course management; created here so a fresh
# keyspace is usable in development.
TABLE_GROUPS: dict[str, list[str]] = {
    "catalog": CATALOG_TABLES_CQL,
    "progress": PROGRESS_TABLES_CQL,
    "quizzes": QUIZ_TABLES_CQL,
    "certificates": CERTIFICATES_TABLES_CQL,
}


def _execution_profile(settings: Settings) -> ExecutionProfile:
    local_dc = settings.cassandra_local_datacenter
    return ExecutionProfile(
        load_balancing_policy=TokenAwarePolicy(
            DCAwareRoundRobinPolicy(local_dc=local_dc)
        ),
        consistency_level=ConsistencyLevel.name_to_value[
            settings.cassandra_consistency
        ],
        serial_consistency_level=ConsistencyLevel.LOCAL_SERIAL,
        request_timeout=settings.cassandra_request_timeout,
    )


class AsyncCassandraConnection:
    """Process-wide Cassandra cluster and session."""

    _cluster: Cluster | None = None
    _session = None  # Session from cassandra_asyncio, supports aexecute()

    @classmethod
    def connect(cls):
        """Connect to the cluster, reusing the session if already open.

        Raises:
            ConnectionError: If no contact point accepts the connection
        """
        if cls._session is not None:
            return cls._session

        settings = get_settings()

        auth_provider = None
        if settings.cassandra_username and settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=settings.cassandra_username,
                password=settings.cassandra_password,
            )

        cls._cluster = Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=settings.cassandra_protocol_version,
            execution_profiles={EXEC_PROFILE_DEFAULT: _execution_profile(settings)},
            connect_timeout=settings.cassandra_connect_timeout,
        )

        try:
            cls._session = cls._cluster.connect()
        except Exception as e:
            logger.error("async_cassandra_connection_failed", error=str(e))
            cls._cluster.shutdown()
            cls._cluster = None
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        logger.info(
            "async_cassandra_connected",
            hosts=settings.cassandra_hosts,
            port=settings.cassandra_port,
            consistency=settings.cassandra_consistency,
        )
        return cls._session

    @classmethod
    def get_session(cls):
        """Get active session, connecting if necessary."""
        if cls._session is None:
            return cls.connect()
        return cls._session

    @classmethod
    def disconnect(cls) -> None:
        """Close session and cluster."""
        if cls._session is not None:
            cls._session.shutdown()
            cls._session = None
        if cls._cluster is not None:
            cls._cluster.shutdown()
            cls._cluster = None
            logger.info("async_cassandra_disconnected")

    @classmethod
    def is_connected(cls) -> bool:
        """Check if connection is active."""
        return cls._session is not None and not cls._session.is_shutdown


def get_async_cassandra_session():
    """Get async-capable Cassandra session (dependency injection helper)."""
    return AsyncCassandraConnection.get_session()


def keyspace_cql(keyspace: str, settings: Settings) -> str:
    """CREATE KEYSPACE statement for the configured topology."""
    if settings.cassandra_local_datacenter:
        replication = (
            "'class': 'NetworkTopologyStrategy', "
            f"'{settings.cassandra_local_datacenter}': "
            f"{settings.cassandra_replication_factor}"
        )
    else:
        replication = (
            "'class': 'SimpleStrategy', "
            f"'replication_factor': {settings.cassandra_replication_factor}"
        )
    return (
        f"CREATE KEYSPACE IF NOT EXISTS {keyspace} "
        f"WITH replication = {{{replication}}} AND durable_writes = true"
    )


async def init_async_tables(session, keyspace: str, group: str) -> None:
    """Create one group of tables (async)."""
    for cql_template in TABLE_GROUPS[group]:
        await session.aexecute(cql_template.format(keyspace=keyspace))
    logger.info("async_tables_created", keyspace=keyspace, group=group)


async def init_async_cassandra():
    """Connect and make sure keyspace and tables exist.

    Returns:
        Cassandra session with aexecute() support
    """
    settings = get_settings()
    keyspace = settings.cassandra_keyspace

    session = AsyncCassandraConnection.connect()
    await session.aexecute(keyspace_cql(keyspace, settings))
    session.set_keyspace(keyspace)

    for group in TABLE_GROUPS:
        await init_async_tables(session, keyspace, group)

    logger.info("async_cassandra_initialized", keyspace=keyspace)
    return session


async def shutdown_async_cassandra() -> None:
    """Shutdown async Cassandra connection."""
    AsyncCassandraConnection.disconnect()
