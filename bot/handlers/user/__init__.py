from aiogram import Router

from . import start
from . import subscription

user_router_aggregate = Router(name="user_router_aggregate")

user_router_aggregate.include_router(start.router)
# Must stay last: contains the catch-all text handler
user_router_aggregate.include_router(subscription.router)
