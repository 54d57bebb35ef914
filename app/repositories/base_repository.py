"""Base repository with common CRUD operations for all repositories."""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Any, Sequence

from supabase import AsyncClient

from app.exceptions import PersistenceError


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class BaseRepository:
    """Base repository providing common CRUD operations.

    Encapsulates standard database operations that are shared across
    all repositories, reducing code duplication and ensuring consistency.

    Attributes:
        db_client: Async Supabase client instance for database operations.
        table_name: Name of the database table this repository manages.
    """

    def __init__(self, db_client: AsyncClient, table_name: str):
        """Initialize the base repository.

        Args:
            db_client: Async Supabase client instance.
            table_name: Name of the database table (e.g., "interview_events").
        """
        self.db_client = db_client
        self.table_name = table_name

    async def get_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        """Retrieve a single record by its ID.

        Args:
            record_id: The unique identifier of the record.

        Returns:
            Record as dictionary if found, None otherwise.

        Raises:
            PersistenceError: If database query fails.
        """
        try:
            response = await (
                self.db_client.table(self.table_name)
                .select("*")
                .eq("id", record_id)
                .limit(1)
                .execute()
            )
            return response.data[0] if response.data else None
        except Exception as error:
            raise PersistenceError(f"Failed to get {self.table_name} by ID: {str(error)}") from error

    async def get_where(
        self,
        filters: Dict[str, Any],
        order_by: Optional[str] = None,
        desc: bool = False
    ) -> List[Dict[str, Any]]:
        """Retrieve all records matching equality filters.

        Args:
            filters: Mapping of column name to required value.
            order_by: Optional column to sort by.
            desc: Sort descending when True.

        Returns:
            List of matching records.

        Raises:
            PersistenceError: If database query fails.
        """
        try:
            query = self.db_client.table(self.table_name).select("*")
            for column, value in filters.items():
                query = query.eq(column, value)
            if order_by:
                query = query.order(order_by, desc=desc)
            response = await query.execute()
            return response.data or []
        except Exception as error:
            raise PersistenceError(f"Failed to query {self.table_name}: {str(error)}") from error

    async def get_where_in(
        self,
        column: str,
        values: Sequence[str],
        order_by: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Retrieve all records whose column value is in the given list.

        Args:
            column: Column to filter on.
            values: Accepted values. An empty list matches nothing.
            order_by: Optional column to sort by (ascending).

        Returns:
            List of matching records.

        Raises:
            PersistenceError: If database query fails.
        """
        if not values:
            return []

        try:
            query = self.db_client.table(self.table_name).select("*").in_(column, list(values))
            if order_by:
                query = query.order(order_by)
            response = await query.execute()
            return response.data or []
        except Exception as error:
            raise PersistenceError(f"Failed to query {self.table_name}: {str(error)}") from error

    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a new record into the table.

        Args:
            data: Dictionary containing record data matching the table schema.

        Returns:
            Dictionary containing the inserted record.

        Raises:
            PersistenceError: If insertion fails (e.g., duplicate key, constraint violation).
        """
        try:
            response = await self.db_client.table(self.table_name).insert(data).execute()
            if not response.data:
                raise PersistenceError(f"Insert into {self.table_name} returned no rows")
            return response.data[0]
        except PersistenceError:
            raise
        except Exception as error:
            raise PersistenceError(f"Failed to create {self.table_name}: {str(error)}") from error

    async def update(self, record_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Update a record with new data.

        Args:
            record_id: The unique identifier of the record to update.
            updates: Dictionary of fields to update.

        Returns:
            Updated record as dictionary.

        Raises:
            PersistenceError: If update fails or record not found.
        """
        try:
            response = await (
                self.db_client.table(self.table_name)
                .update(updates)
                .eq("id", record_id)
                .execute()
            )
        except Exception as error:
            raise PersistenceError(f"Failed to update {self.table_name}: {str(error)}") from error

        if not response.data:
            raise PersistenceError(f"{self.table_name.capitalize()} with ID {record_id} not found")

        return response.data[0]

    async def delete(self, record_id: str) -> bool:
        """Delete a record from the table.

        Args:
            record_id: The unique identifier of the record to delete.

        Returns:
            True if a record was deleted.

        Raises:
            PersistenceError: If deletion fails.
        """
        try:
            response = await (
                self.db_client.table(self.table_name)
                .delete()
                .eq("id", record_id)
                .execute()
            )
            return bool(response.data)
        except Exception as error:
            raise PersistenceError(f"Failed to delete {self.table_name}: {str(error)}") from error

    async def delete_where_in(self, column: str, values: Sequence[str]) -> int:
        """Delete every record whose column value is in the given list.

        Args:
            column: Column to filter on.
            values: Accepted values. An empty list deletes nothing.

        Returns:
            Number of deleted records.

        Raises:
            PersistenceError: If deletion fails.
        """
        if not values:
            return 0

        try:
            response = await (
                self.db_client.table(self.table_name)
                .delete()
                .in_(column, list(values))
                .execute()
            )
            return len(response.data or [])
        except Exception as error:
            raise PersistenceError(f"Failed to delete {self.table_name}: {str(error)}") from error
