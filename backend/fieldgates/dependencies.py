from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from fieldgates.config import settings
from fieldgates.database import get_db
from fieldgates.services.gate_service import GateWorkflow, build_workflow
from fieldgates.services.gate_store import GateStore

ADMIN_ROLES = {"admin", "owner"}


@dataclass
class Actor:
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


async def get_actor(x_user_id: str = Header(...), x_user_role: str = Header("tech")) -> Actor:
    # Authentication happens upstream; the gateway forwards the verified identity.
    if not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user id")
    return Actor(user_id=x_user_id.strip(), role=x_user_role.strip().lower())


async def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return actor


def get_workflow(db: Session = Depends(get_db)) -> GateWorkflow:
    return build_workflow(GateStore(db), settings)


def load_visible_job(job_id: str, actor: Actor, workflow: GateWorkflow):
    job = workflow.store.get_job(job_id)
    if not actor.is_admin and job.lead_tech_id != actor.user_id:
        # Same answer as a missing job, so techs can't probe other jobs.
        raise HTTPException(status_code=404, detail="Job not found")
    return job
