"""mineman: the application scaffolding & in-process event messaging of the mineman service"""
