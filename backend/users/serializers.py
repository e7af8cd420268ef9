from rest_framework import serializers

from .models import User


class ProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "first_name",
            "last_name",
            "phone",
            "can_rent",
            "can_list",
        ]
        read_only_fields = ["id", "username", "can_rent", "can_list"]
