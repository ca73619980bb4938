"""Proxy a CRM call through the hub and print the resulting analytics."""

import asyncio

from insight_hub.core.container import DIContainer
from insight_hub.core.middleware import HandlerResult, RequestContext


async def main() -> None:
    hub = DIContainer.create_hub()

    async def list_contacts(context: RequestContext) -> HandlerResult:
        data = await hub.crm.get(
            "/contacts/", params={"locationId": hub.crm.location_id, "limit": 20}
        )
        return HandlerResult(200, data)

    result = await hub.handle("GET", "/api/contacts", list_contacts)
    print("Status:", result.status_code)
    print("Rate limits:", hub.rate_limits())
    print("Analytics:", hub.analytics().requests)
    await hub.aclose()


if __name__ == "__main__":
    asyncio.run(main())
