"""
Utilidades de autenticación JWT
Valida tokens generados por MS-AUTH-PY
"""
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from ..config import settings
from ..services.visit_workflow import AgentContext

# HTTP Bearer scheme para el header Authorization (más simple para Swagger)
http_bearer = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """
    Decodifica y valida un token JWT

    Args:
        token: Token JWT a decodificar

    Returns:
        dict: Datos extraídos del token

    Raises:
        HTTPException: Si el token es inválido
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="No se pudieron validar las credenciales",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        email: str = payload.get("sub")
        role: str = (payload.get("role") or "").upper()  # Normalizar a mayúsculas
        user_id = payload.get("user_id")
        company_id = payload.get("company_id")

        if email is None:
            raise credentials_exception

        return {
            "email": email,
            "role": role,
            "user_id": user_id,
            "company_id": company_id
        }

    except JWTError:
        raise credentials_exception


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(http_bearer)) -> dict:
    """
    Obtiene el usuario actual desde el token JWT

    Args:
        credentials: Credenciales HTTP Bearer del header Authorization

    Returns:
        dict: Información del usuario (email, role, user_id, company_id)

    Raises:
        HTTPException: Si el token es inválido o no está presente
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token de autenticación requerido",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials
    user_data = decode_token(token)
    return user_data


async def get_agent_context(current_user: dict = Depends(get_current_user)) -> AgentContext:
    """
    Identidad del agente para los servicios: tenant (company_id) + agente (user_id)

    Raises:
        HTTPException: 403 si el token no trae empresa o usuario
    """
    user_id = current_user.get("user_id")
    company_id = current_user.get("company_id")
    if user_id is None or company_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="El token no está asociado a un agente y una empresa"
        )
    return AgentContext(company_id=int(company_id), agent_id=int(user_id))
