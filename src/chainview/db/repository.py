"""Read executor for entity plans, plus the few writes the HTTP surface needs."""

import asyncio
from typing import Any, Awaitable, Dict, List, Optional

from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, ExecutionTimeout, PyMongoError

from chainview.commons.chainview_logger import ChainviewLogger
from chainview.commons.errors import Conflict, NotFound, QueryExecutionError, Timeout
from chainview.configs import MONGO_QUERY_TIMEOUT
from chainview.db.connection import MongoConnection
from chainview.query.pipeline import compile_plan
from chainview.query.planner import ExecutionPlan

USERS_COLLECTION = "users"
REQUESTS_COLLECTION = "Requests"


class EntityRepository(object):
    """Runs execution plans against MongoDB.

    Reads go through a single aggregation per request; skip and limit are part
    of the pipeline so only the requested page leaves the server. Every call
    is bounded by ``timeout`` seconds, enforced server-side (``maxTimeMS``)
    and client-side.
    """

    def __init__(self, connection: MongoConnection, timeout: float = MONGO_QUERY_TIMEOUT):
        self.logger = ChainviewLogger()
        self._connection = connection
        self._timeout = timeout

    async def _bounded(self, awaitable: Awaitable, what: str):
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except (asyncio.TimeoutError, ExecutionTimeout):
            self.logger.warning(f"MongoDB deadline of {self._timeout}s exceeded for {what}.")
            raise Timeout("storage", self._timeout) from None

    async def execute(self, plan: ExecutionPlan) -> List[Dict[str, Any]]:
        """Run ``plan`` and return the raw documents.

        Parameters
        ----------
        plan : ExecutionPlan
            Plan produced by the planner.

        Returns
        -------
        list of dict
            At most ``plan.limit`` documents, in plan order.

        Raises
        ------
        Timeout
            When the storage deadline is exceeded.
        QueryExecutionError
            On any other storage failure. The pipeline is logged.
        """
        pipeline = compile_plan(plan)
        options: Dict[str, Any] = {"maxTimeMS": int(self._timeout * 1000)}
        if plan.kind.collation:
            options["collation"] = plan.kind.collation
        self.logger.debug(f"Running {plan.label} on {plan.kind.collection}: {pipeline}")

        collection = self._connection.collection(plan.kind.collection)
        try:
            cursor = collection.aggregate(pipeline, **options)
            return await self._bounded(cursor.to_list(length=plan.limit), plan.label)
        except PyMongoError as e:
            self.logger.error(f"Could not execute {plan.label} on {plan.kind.collection}: {pipeline}")
            self.logger.exception(e)
            raise QueryExecutionError(e) from e

    async def execute_one(self, plan: ExecutionPlan) -> Dict[str, Any]:
        """Run a single-entity plan; zero rows raise :class:`NotFound`."""
        rows = await self.execute(plan)
        if not rows:
            raise NotFound(f"Not found: {plan.label}")
        return rows[0]

    async def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """Insert ``document`` and return it with its new ``_id``."""
        try:
            result = await self._bounded(
                self._connection.collection(collection).insert_one(document), f"insert into {collection}"
            )
        except DuplicateKeyError as e:
            raise Conflict(f"Duplicate key in {collection}.") from e
        except PyMongoError as e:
            self.logger.exception(e)
            raise QueryExecutionError(e) from e
        document["_id"] = result.inserted_id
        return document

    async def find_one_by(self, collection: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return await self._bounded(
                self._connection.collection(collection).find_one(filter), f"lookup in {collection}"
            )
        except PyMongoError as e:
            self.logger.exception(e)
            raise QueryExecutionError(e) from e

    async def update_by(
        self, collection: str, filter: Dict[str, Any], changes: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Set ``changes`` on the first match of ``filter``; returns the updated document."""
        try:
            return await self._bounded(
                self._connection.collection(collection).find_one_and_update(
                    filter, {"$set": changes}, return_document=ReturnDocument.AFTER
                ),
                f"update in {collection}",
            )
        except DuplicateKeyError as e:
            raise Conflict(f"Duplicate key in {collection}.") from e
        except PyMongoError as e:
            self.logger.exception(e)
            raise QueryExecutionError(e) from e

    async def delete_by(self, collection: str, filter: Dict[str, Any]) -> int:
        """Delete every match of ``filter``; returns the deleted count."""
        try:
            result = await self._bounded(
                self._connection.collection(collection).delete_many(filter), f"delete in {collection}"
            )
        except PyMongoError as e:
            self.logger.exception(e)
            raise QueryExecutionError(e) from e
        return result.deleted_count

    async def ensure_indexes(self):
        """Create the unique indexes the write paths rely on."""
        try:
            await self._connection.collection(USERS_COLLECTION).create_index([("email", ASCENDING)], unique=True)
            await self._connection.collection(REQUESTS_COLLECTION).create_index(
                [("eos_account", ASCENDING)], unique=True
            )
        except PyMongoError as e:
            self.logger.error(f"Could not create indexes: {e}")
