"""HDF5 output: plot files and checkpoints."""
