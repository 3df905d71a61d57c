from typing import Dict, List, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from build_scheduler.server.build__handler import get_dispatcher

router = APIRouter()


class ContainerView(BaseModel):
    guid: str
    name: Optional[str] = None
    build_id: Optional[str] = None


@router.get("/containers")
def http_list_containers(request: Request) -> Dict[str, List[ContainerView]]:
    pool = get_dispatcher(request).pool
    return {
        "containers": [
            ContainerView(
                guid=c.guid,
                name=c.name,
                build_id=c.build.build_id if c.build else None,
            )
            for c in pool.containers
        ]
    }
