# dashboard actions; aggregates either succeed completely or fail as a whole
from datetime import datetime
from typing import Optional

import db.reports as reports
from actions.result import ActionResult, action
from db.accounts import require_staff
from db.models import Identity


@action("Error al calcular estadísticas")
async def get_dashboard_stats(identity: Identity) -> ActionResult:
    require_staff(identity)
    return ActionResult(True, data=await reports.dashboard_stats())


@action("Error al calcular estadísticas de clientes")
async def get_customer_stats(identity: Identity, now: Optional[datetime] = None) -> ActionResult:
    require_staff(identity)
    return ActionResult(True, data=await reports.customer_stats(now))


@action("Error al cargar ventas recientes", default=list)
async def get_recent_sales(identity: Identity, limit: int = 5) -> ActionResult:
    require_staff(identity)
    return ActionResult(True, data=await reports.recent_sales(limit))


@action("Error al calcular ingresos", default=list)
async def get_monthly_revenue(identity: Identity, year: int) -> ActionResult:
    require_staff(identity)
    return ActionResult(True, data=await reports.monthly_revenue(year))
