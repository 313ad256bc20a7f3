"""Example showing shared state across sequential, parallel and nested steps."""

import asyncio

from pydantic import BaseModel

from mule import Mule, create_step


class Item(BaseModel):
    name: str
    price: float


class Order(BaseModel):
    user_id: str
    items: list[Item]


class UserDetails(BaseModel):
    name: str
    email: str


async def validate_order(ctx):
    total = sum(item.price for item in ctx.input.items)
    ctx.set_state({"user_id": ctx.input.user_id, "total_amount": total})
    return total >= 10


async def fetch_user(ctx):
    if not ctx.input:
        raise ValueError("Order validation failed")
    user_id = ctx.state["user_id"]
    details = UserDetails(name=f"User {user_id}", email=f"{user_id}@example.com")
    ctx.set_state({"user_name": details.name})
    return details


async def process_order(ctx):
    print(f"Processing order for {ctx.state['user_name']}: ${ctx.state['total_amount']:.2f}")
    return {"order_id": f"ORD-{ctx.state['user_id']}", "status": "completed"}


def tracker(key, value):
    async def executor(ctx):
        ctx.set_state({key: value})
        return value

    return create_step(id=f"track_{key}", executor=executor, output_schema=int)


async def main():
    mule = Mule("typed-state-example", persistence=False)

    order_workflow = (
        mule.create_workflow(input_schema=Order)
        .add_step(create_step(id="validateOrder", executor=validate_order, output_schema=bool))
        .add_step(
            create_step(
                id="fetchUser",
                executor=fetch_user,
                input_schema=bool,
                output_schema=UserDetails,
            )
        )
        .add_step(create_step(id="processOrder", executor=process_order))
    )
    result = await order_workflow.run(
        initial_input={
            "user_id": "user123",
            "items": [{"name": "Book", "price": 15.99}, {"name": "Pen", "price": 2.99}],
        }
    )
    print("Order result:", result)
    print("Final state:", order_workflow.get_state())

    analytics = mule.create_workflow(state={"views": 0, "clicks": 0, "conversions": 0})
    analytics.parallel([tracker("views", 150), tracker("clicks", 45), tracker("conversions", 12)])
    await analytics.run()
    state = analytics.get_state()
    print(f"Conversion rate: {state['conversions'] / state['views'] * 100:.2f}%")

    async def enrich(ctx):
        ctx.set_state({"enriched_by": "enrichment-workflow"})
        return ctx.input.upper()

    async def setup(ctx):
        return ctx.state["parent_data"]

    enrichment = mule.create_workflow().add_step(create_step(id="enrichData", executor=enrich))
    parent = (
        mule.create_workflow(state={"parent_data": "initial"})
        .add_step(create_step(id="setup", executor=setup))
        .add_step(enrichment)
    )
    print("Nested result:", await parent.run())
    print("Parent state after nested workflow:", parent.get_state())


if __name__ == "__main__":
    asyncio.run(main())
