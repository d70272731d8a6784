"""File defining all the routes for the module, to configure the router"""

from fastapi import APIRouter

from app.module import module_list

api_router = APIRouter()


for module in module_list:
    api_router.include_router(module.router)
