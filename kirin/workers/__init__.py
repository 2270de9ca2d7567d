"""Stage workers: collect, process and output."""
