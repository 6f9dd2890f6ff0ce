"""
Training API Router

HTTP endpoints for training modules and per-user progress.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel

from secaware.api import APIResponse
from secaware.common.auth.dependencies import get_current_user_id, get_role_provider
from secaware.common.auth.roles import RoleProvider
from secaware.common.logger import get_logger
from secaware.training.catalog import ModuleSpec, ModuleUpdate, TrainingCatalog
from secaware.training.progress_service import TrainingProgressService

logger = get_logger(__name__)

router = APIRouter()


class UpdateProgressRequest(BaseModel):
    progress_percentage: Any = None
    time_spent: Any = 0


class CompleteTrainingRequest(BaseModel):
    final_percentage: Any = None
    total_time_spent: Any = None


def get_progress_service() -> TrainingProgressService:
    return TrainingProgressService()


def get_training_catalog(roles: RoleProvider = Depends(get_role_provider)) -> TrainingCatalog:
    return TrainingCatalog(roles=roles)


@router.get("")
async def list_modules(
    category: Optional[str] = Query(None),
    content_type: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    catalog: TrainingCatalog = Depends(get_training_catalog),
) -> Dict[str, Any]:
    modules = await catalog.list_modules(user_id, category=category, content_type=content_type, search=search)
    return APIResponse.success(modules)


@router.get("/progress")
async def get_progress(
    user_id: str = Depends(get_current_user_id),
    service: TrainingProgressService = Depends(get_progress_service),
) -> Dict[str, Any]:
    summary = await service.get_progress(user_id)
    return APIResponse.success(summary.to_dict())


@router.get("/{module_id}")
async def get_module(
    module_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    catalog: TrainingCatalog = Depends(get_training_catalog),
) -> Dict[str, Any]:
    module = await catalog.get_module(user_id, module_id)
    return APIResponse.success(module)


@router.post("/{module_id}/start")
async def start_training(
    module_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    service: TrainingProgressService = Depends(get_progress_service),
) -> Dict[str, Any]:
    module = await service.start(user_id, module_id)
    return APIResponse.success(module, message="Training started")


@router.put("/{module_id}/progress")
async def update_progress(
    request: UpdateProgressRequest,
    module_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    service: TrainingProgressService = Depends(get_progress_service),
) -> Dict[str, Any]:
    await service.update_progress(user_id, module_id, request.progress_percentage, request.time_spent)
    return APIResponse.success(message="Progress updated")


@router.post("/{module_id}/complete")
async def complete_training(
    request: Optional[CompleteTrainingRequest] = None,
    module_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    service: TrainingProgressService = Depends(get_progress_service),
) -> Dict[str, Any]:
    request = request or CompleteTrainingRequest()
    await service.complete(
        user_id, module_id,
        final_percentage=request.final_percentage,
        total_time_spent=request.total_time_spent,
    )
    return APIResponse.success(message="Training completed")


@router.post("", status_code=201)
async def create_module(
    spec: ModuleSpec,
    user_id: str = Depends(get_current_user_id),
    catalog: TrainingCatalog = Depends(get_training_catalog),
) -> Dict[str, Any]:
    module_id = await catalog.create_module(user_id, spec)
    return APIResponse.success({"id": module_id}, message="Training module created")


@router.put("/{module_id}")
async def update_module(
    update: ModuleUpdate,
    module_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    catalog: TrainingCatalog = Depends(get_training_catalog),
) -> Dict[str, Any]:
    await catalog.update_module(user_id, module_id, update)
    return APIResponse.success({"id": module_id}, message="Training module updated")


@router.delete("/{module_id}")
async def delete_module(
    module_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    catalog: TrainingCatalog = Depends(get_training_catalog),
) -> Dict[str, Any]:
    action = await catalog.delete_module(user_id, module_id)
    return APIResponse.success({"id": module_id, "action": action}, message=f"Training module {action}")


logger.info(f"Training router loaded with {len(router.routes)} routes")
