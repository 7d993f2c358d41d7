# Utils package - code generators, access control, logging and configuration checks
