"""
Provisioning engine — probe, locate, snapshot, mutate, step, orchestrate.
"""
