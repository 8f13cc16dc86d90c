from fastapi import APIRouter, Request

router = APIRouter(prefix="/api", tags=["config"])


@router.get("/config")
def get_client_config(request: Request):
    """Public backend endpoint and anon key for the browser client."""
    settings = request.app.state.settings
    return {
        "supabaseUrl": settings.SUPABASE_URL,
        "supabaseAnonKey": settings.SUPABASE_ANON_KEY,
    }
