# arithduel/games/duel/__init__.py
