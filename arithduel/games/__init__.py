# arithduel/games/__init__.py
