"""LuckSpin: weighted prize wheel with an animated, continuation-safe spin."""

__version__ = '1.0.0'
