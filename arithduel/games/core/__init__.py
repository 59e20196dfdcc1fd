# arithduel/games/core/__init__.py
