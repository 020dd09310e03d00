"""
MS-VISIT-PY - Ejecución de visitas de agentes de campo
"""
