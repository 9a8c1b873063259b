"""
Record store client (Airtable REST API).
Customers, products, orders, prospects and chat transcripts live here.

Version: 1.0.0
"""
import logging
from typing import Any, Dict, List, Optional

from .exceptions import ExternalServiceError
from .http_client import BaseAPIClient

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class RecordStoreError(ExternalServiceError):
    """Record store call failed."""
    pass


def field_equals(field_name: str, value: str) -> str:
    """Airtable formula matching a field to a literal string."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"{{{field_name}}}='{escaped}'"


class AirtableRecordStore(BaseAPIClient):
    """
    Thin Airtable client.

    Records are returned as Airtable delivers them:
    {"id": "rec...", "fields": {...}, "createdTime": "..."}.
    """

    service_name = "airtable"

    def __init__(
        self,
        api_key: Optional[str],
        base_id: Optional[str],
        base_url: str = "https://api.airtable.com/v0",
        **client_options
    ):
        super().__init__(base_url, **client_options)
        self.api_key = api_key
        self.base_id = base_id

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.base_id and self.base_url)

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    async def _request(self, method: str, path: str, operation: str, **kwargs) -> Dict[str, Any]:
        try:
            return await self._make_api_request(
                method,
                f"/{self.base_id}/{path}",
                operation=operation,
                **kwargs
            )
        except ExternalServiceError as e:
            raise RecordStoreError(str(e), status_code=e.status_code, payload=e.payload) from e

    async def list_records(
        self,
        table: str,
        formula: Optional[str] = None,
        sort_field: Optional[str] = None,
        sort_direction: str = "asc",
        max_records: Optional[int] = None
    ) -> List[Record]:
        """
        List records of a table.

        Args:
            table: Table id
            formula: filterByFormula expression
            sort_field: Field to sort by
            sort_direction: "asc" or "desc"
            max_records: Cap on returned records

        Returns:
            Matching records (possibly empty)
        """
        params: Dict[str, Any] = {}
        if formula:
            params["filterByFormula"] = formula
        if sort_field:
            params["sort[0][field]"] = sort_field
            params["sort[0][direction]"] = sort_direction
        if max_records:
            params["maxRecords"] = str(max_records)

        result = await self._request("GET", table, "list_records", params=params or None)
        records = result.get("records") or []

        logger.debug(f"Listed {len(records)} records from {table}", extra={"table": table})
        return records

    async def find_by_field(
        self,
        table: str,
        field_name: str,
        value: str,
        sort_field: Optional[str] = None,
        sort_direction: str = "asc",
        max_records: Optional[int] = 1
    ) -> List[Record]:
        """Records whose field equals value."""
        return await self.list_records(
            table,
            formula=field_equals(field_name, value),
            sort_field=sort_field,
            sort_direction=sort_direction,
            max_records=max_records
        )

    async def create(self, table: str, fields: Dict[str, Any]) -> Record:
        """Create a record and return it."""
        record = await self._request("POST", table, "create_record", json_data={"fields": fields})
        logger.info(f"Created record {record.get('id')} in {table}", extra={"table": table})
        return record

    async def update(self, table: str, record_id: str, fields: Dict[str, Any]) -> Record:
        """Patch fields of a record and return it."""
        record = await self._request(
            "PATCH",
            f"{table}/{record_id}",
            "update_record",
            json_data={"fields": fields}
        )
        logger.info(f"Updated record {record_id} in {table}", extra={"table": table})
        return record


__all__ = ['AirtableRecordStore', 'RecordStoreError', 'Record', 'field_equals']
