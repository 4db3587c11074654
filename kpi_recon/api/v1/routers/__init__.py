from .kpi_routes import router as kpi_router

all_routers = [
    kpi_router,
]
