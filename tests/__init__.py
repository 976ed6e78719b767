"""Test package for Speed Clock.

Core tests drive the timekeeping engine with fake clocks and scripted time
providers; smoke tests run the pygame window headlessly using SDL's dummy
video driver. To run these tests, execute ``pytest`` from the project root.
"""
