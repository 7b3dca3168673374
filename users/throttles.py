from rest_framework.throttling import SimpleRateThrottle


class EmailLookupThrottle(SimpleRateThrottle):
    # rate comes from REST_FRAMEWORK['DEFAULT_THROTTLE_RATES']
    scope = 'email_lookup'

    def get_cache_key(self, request, view):
        if request.user.is_authenticated:
            return self.cache_format % {
                'scope': self.scope,
                'ident': request.user.pk
            }

        # anonymous callers are limited per IP so the endpoint cannot be used
        # to enumerate accounts in bulk
        return self.cache_format % {
            'scope': self.scope,
            'ident': self.get_ident(request)
        }
