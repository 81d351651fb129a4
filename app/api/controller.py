from fastapi import FastAPI
from app.api import (
    executive_token,
    operator_token,
    driver,
    vehicle,
    booking,
    dashboard,
)
from app.src.enums import AppID


# ------------------------------------------------------
# Separate FastAPI apps for the admin and company views
# ------------------------------------------------------
app_executive = FastAPI(title="Executive APP")
app_operator = FastAPI(title="Operator APP")

# Tag each app with its AppID
app_executive.state.id = AppID.EXECUTIVE
app_operator.state.id = AppID.OPERATOR


# ------------------------------------------------------
# Executive routers (admin view, every company)
# ------------------------------------------------------
app_executive.include_router(executive_token.route_executive)
app_executive.include_router(driver.route_executive)
app_executive.include_router(vehicle.route_executive)
app_executive.include_router(booking.route_executive)
app_executive.include_router(dashboard.route_executive)


# ------------------------------------------------------
# Operator routers (company view, pinned to the token's company)
# ------------------------------------------------------
app_operator.include_router(operator_token.route_operator)
app_operator.include_router(driver.route_operator)
app_operator.include_router(vehicle.route_operator)
app_operator.include_router(booking.route_operator)
app_operator.include_router(dashboard.route_operator)
