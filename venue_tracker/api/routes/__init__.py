"""
API routes, all mounted under /api:

- groups: join/create a group, poll group state
- location: push member positions
- chat: group messages
- bets: fight outcome votes
- fights: static fight schedule
"""
