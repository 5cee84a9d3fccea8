"""
Todo engine package.

Local single-user todo list: natural-language scheduling, #tag filters, a
keyboard command dispatcher and key-value persistence, served over a small
FastAPI surface. The ASGI app lives in todo_engine.main.
"""
