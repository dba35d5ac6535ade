"""Download SRA samples as paired and singleton FASTQ files."""
