"""Users Service: コマンド / クエリハンドラーが送出するエラー"""



class UserServiceError(Exception):
    status_code = 500


class UserNotFound(UserServiceError):
    status_code = 404

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"User not found with id: {user_id}")


class EmailAlreadyRegistered(UserServiceError):
    status_code = 409

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email already registered: {email}")
