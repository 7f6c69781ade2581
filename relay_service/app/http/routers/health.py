from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    return {"ok": True}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Store: can read history for a dummy conversation.
    Tools: how many are registered.
    """
    svc = request.app.state.gen_svc
    if svc.store is not None:
        try:
            await svc.store.recent("_readiness", 1)
        except Exception as e:
            return {"ready": False, "store": False, "tools": len(svc.registry), "error": str(e)}
    return {"ready": True, "store": svc.store is not None, "tools": len(svc.registry)}
