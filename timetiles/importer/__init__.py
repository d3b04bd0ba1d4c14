"""Import pipeline: file reading, record transforms and job orchestration."""
