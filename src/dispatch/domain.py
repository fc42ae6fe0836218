"""Dispatch bounded context — Offer Dispatch, Delivery Lifecycle and Agent Earnings.

Runs on the delivery agent's side: offers pending orders to the agent, drives
each accepted order to delivery behind a proof-of-delivery check, and books
the agent's commission. The remote order service stays the arbiter of who
owns an order; this context coordinates around it.
"""

from protean.domain import Domain

dispatch = Domain(name="dispatch")
