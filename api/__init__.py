"""FastAPI application and routers for ClientDesk."""
