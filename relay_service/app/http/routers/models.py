from typing import List

from fastapi import APIRouter, Request

router = APIRouter(prefix="/models", tags=["models"])


@router.get("", response_model=List[str])
def list_models(request: Request):
    """List the model aliases the provider accepts."""
    gen_svc = request.app.state.gen_svc
    return gen_svc.list_models()
