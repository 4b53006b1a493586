"""Reconcile Cluster API HarvesterMachines into Harvester virtual machines."""

__version__ = '0.1.0'
